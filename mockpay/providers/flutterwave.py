"""Flutterwave mock - hosted payments, verification, and transfers."""

from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Query, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from mockpay.providers.base import error_response, get_services, schedule_webhook
from mockpay.services import Services
from mockpay.services.ledger import DuplicateReferenceError, TransactionNotFoundError
from mockpay.shared.models import Provider, Transaction, TransactionStatus, WebhookPayload

router = APIRouter()

PROVIDER = Provider.FLUTTERWAVE


# === Request Models ===

class Customer(BaseModel):
    email: str = "customer@example.com"
    name: Optional[str] = None


class PaymentRequest(BaseModel):
    tx_ref: Optional[str] = None
    amount: float = 0
    currency: str = "NGN"
    redirect_url: Optional[str] = None
    customer: Customer = Field(default_factory=Customer)
    meta: Any = None


class TransferRequest(BaseModel):
    amount: float = 0
    currency: str = "NGN"
    account_bank: Optional[str] = None
    bank_code: Optional[str] = None
    account_number: Optional[str] = None
    narration: Optional[str] = None
    meta: Any = None


# === Webhook Variant ===

class FlutterwaveTransaction(BaseModel):
    id: str
    tx_ref: str
    status: TransactionStatus
    amount: float
    currency: str
    customer_email: str
    customer_name: Optional[str] = None

    @classmethod
    def from_transaction(cls, txn: Transaction) -> "FlutterwaveTransaction":
        return cls(
            id=txn.id,
            tx_ref=txn.reference,
            status=txn.status,
            amount=txn.amount,
            currency=txn.currency,
            customer_email=txn.customer_email,
            customer_name=txn.customer_name,
        )

    @property
    def event(self) -> str:
        return "charge.completed" if self.status == TransactionStatus.SUCCESSFUL else "charge.failed"

    def to_webhook(self) -> WebhookPayload:
        return WebhookPayload(
            event=self.event,
            data={
                "id": self.id,
                "tx_ref": self.tx_ref,
                "status": self.status.value,
                "amount": self.amount,
                "currency": self.currency,
                "customer": {"email": self.customer_email, "name": self.customer_name},
            },
        )


async def _verify(services: Services, txn: Transaction, background_tasks: BackgroundTasks) -> dict:
    resolution = await run_in_threadpool(services.ledger.resolve, txn)
    txn = resolution.transaction
    # Unlike Paystack, every verify call notifies again, resolved or not
    schedule_webhook(
        background_tasks, services, PROVIDER,
        FlutterwaveTransaction.from_transaction(txn).to_webhook(),
        txn.callback_url,
    )
    return {
        "status": "success",
        "message": "Transaction fetched successfully",
        "data": {
            "id": txn.id,
            "tx_ref": txn.reference,
            "amount": txn.amount,
            "currency": txn.currency,
            "status": txn.status.value,
            "created_at": txn.created_at,
            "customer": {"email": txn.customer_email, "name": txn.customer_name},
        },
    }


# === Endpoints ===

@router.post("/payments")
async def initialize(req: PaymentRequest, request: Request):
    services = get_services(request)
    callback_url = req.redirect_url or services.config.default_webhook_url
    try:
        txn = await run_in_threadpool(
            services.ledger.create_transaction,
            provider=PROVIDER,
            amount=req.amount,
            customer_email=req.customer.email,
            customer_name=req.customer.name,
            currency=req.currency,
            callback_url=callback_url,
            metadata=req.meta,
            reference=req.tx_ref,
        )
    except DuplicateReferenceError as e:
        return error_response(PROVIDER, 400, str(e))

    return {
        "status": "success",
        "message": "Hosted Link created",
        "data": {
            "link": f"{services.config.frontend_url}/checkout?ref={txn.reference}",
            "tx_ref": txn.reference,
        },
    }


@router.get("/transactions/verify_by_reference")
async def verify_by_reference(
    request: Request,
    background_tasks: BackgroundTasks,
    tx_ref: Optional[str] = Query(None),
):
    services = get_services(request)
    if not tx_ref:
        return error_response(PROVIDER, 400, "tx_ref is required")
    try:
        txn = await run_in_threadpool(services.ledger.get_transaction, PROVIDER, tx_ref)
    except TransactionNotFoundError:
        return error_response(PROVIDER, 404, "No transaction was found for this id")
    return await _verify(services, txn, background_tasks)


@router.get("/transactions/{transaction_id}/verify")
async def verify(transaction_id: str, request: Request, background_tasks: BackgroundTasks):
    services = get_services(request)
    try:
        txn = await run_in_threadpool(services.ledger.get_transaction_by_id, PROVIDER, transaction_id)
    except TransactionNotFoundError:
        return error_response(PROVIDER, 404, "No transaction was found for this id")
    return await _verify(services, txn, background_tasks)


@router.post("/transfers")
async def create_transfer(req: TransferRequest, request: Request):
    services = get_services(request)
    transfer = await run_in_threadpool(
        services.ledger.create_transfer,
        provider=PROVIDER,
        amount=req.amount,
        currency=req.currency,
        bank_code=req.account_bank or req.bank_code,
        account_number=req.account_number,
        narration=req.narration,
        metadata=req.meta,
    )
    return {
        "status": "success",
        "message": "Transfer Queued Successfully",
        "data": {
            "id": transfer.id,
            "reference": transfer.reference,
            "status": transfer.status,
            "amount": transfer.amount,
            "currency": transfer.currency,
        },
    }

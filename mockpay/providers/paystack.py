"""Paystack mock - transaction initialize/verify, transfers, and banks."""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from mockpay.providers.base import error_response, get_services, schedule_webhook
from mockpay.services.ledger import DuplicateReferenceError, TransactionNotFoundError
from mockpay.shared.models import (
    Provider,
    Transaction,
    TransactionStatus,
    WebhookPayload,
    generate_reference,
)

router = APIRouter()

PROVIDER = Provider.PAYSTACK

PAYSTACK_EVENTS = {
    TransactionStatus.SUCCESS: "charge.success",
    TransactionStatus.FAILED: "charge.failed",
    TransactionStatus.ABANDONED: "charge.abandoned",
}

BANKS = [
    {"name": "Access Bank", "code": "044"},
    {"name": "GTBank", "code": "058"},
    {"name": "Kuda Bank", "code": "50211"},
    {"name": "Zenith Bank", "code": "057"},
]


# === Request Models ===

class InitializeRequest(BaseModel):
    amount: float = 0
    email: str = "customer@example.com"
    currency: str = "NGN"
    reference: Optional[str] = None
    callback_url: Optional[str] = None
    metadata: Any = None


class TransferRequest(BaseModel):
    amount: float = 0
    currency: str = "NGN"
    recipient: Optional[str] = None
    bank_code: Optional[str] = None
    account_number: Optional[str] = None
    reason: Optional[str] = None
    metadata: Any = None


# === Webhook Variant ===

class PaystackTransaction(BaseModel):
    reference: str
    status: TransactionStatus
    amount: float
    currency: str
    customer_email: str

    @classmethod
    def from_transaction(cls, txn: Transaction) -> "PaystackTransaction":
        return cls(
            reference=txn.reference,
            status=txn.status,
            amount=txn.amount,
            currency=txn.currency,
            customer_email=txn.customer_email,
        )

    def to_webhook(self) -> WebhookPayload:
        return WebhookPayload(
            event=PAYSTACK_EVENTS[self.status],
            data={
                "reference": self.reference,
                "status": self.status.value,
                "amount": self.amount,
                "currency": self.currency,
                "customer": {"email": self.customer_email},
            },
        )


def verification_body(txn: Transaction) -> dict:
    return {
        "status": True,
        "message": "Verification successful",
        "data": {
            "id": txn.id,
            "amount": txn.amount,
            "currency": txn.currency,
            "transaction_date": datetime.now(timezone.utc).isoformat(),
            "status": txn.status.value,
            "reference": txn.reference,
            "gateway_response": "Approved" if txn.status == TransactionStatus.SUCCESS else "Declined",
            "customer": {"email": txn.customer_email},
        },
    }


# === Endpoints ===

@router.post("/transaction/initialize")
async def initialize(req: InitializeRequest, request: Request):
    services = get_services(request)
    callback_url = req.callback_url or services.config.default_webhook_url
    try:
        txn = await run_in_threadpool(
            services.ledger.create_transaction,
            provider=PROVIDER,
            amount=req.amount,
            customer_email=req.email,
            currency=req.currency,
            callback_url=callback_url,
            metadata=req.metadata,
            reference=req.reference,
        )
    except DuplicateReferenceError as e:
        return error_response(PROVIDER, 400, str(e))

    return {
        "status": True,
        "message": "Authorization URL created",
        "data": {
            "authorization_url": f"{services.config.frontend_url}/checkout?ref={txn.reference}",
            "access_code": generate_reference("AC"),
            "reference": txn.reference,
        },
    }


@router.api_route("/transaction/verify/{reference}", methods=["GET", "POST"])
async def verify(reference: str, request: Request, background_tasks: BackgroundTasks):
    services = get_services(request)
    try:
        txn = await run_in_threadpool(services.ledger.get_transaction, PROVIDER, reference)
    except TransactionNotFoundError:
        return error_response(PROVIDER, 404, "Transaction not found")

    resolution = await run_in_threadpool(services.ledger.resolve, txn)
    txn = resolution.transaction
    # Paystack notifies once, on the call that resolved the transaction
    if resolution.resolved:
        schedule_webhook(
            background_tasks, services, PROVIDER,
            PaystackTransaction.from_transaction(txn).to_webhook(),
            txn.callback_url,
        )

    return verification_body(txn)


@router.post("/transfer")
async def create_transfer(req: TransferRequest, request: Request):
    services = get_services(request)
    transfer = await run_in_threadpool(
        services.ledger.create_transfer,
        provider=PROVIDER,
        amount=req.amount,
        currency=req.currency,
        bank_code=req.bank_code,
        account_number=req.account_number,
        narration=req.reason,
        metadata=req.metadata,
    )
    return {
        "status": True,
        "message": "Transfer queued",
        "data": {
            "id": transfer.id,
            "transfer_code": generate_reference("TRF"),
            "reference": transfer.reference,
            "status": transfer.status,
            "amount": transfer.amount,
            "currency": transfer.currency,
        },
    }


@router.get("/banks")
async def get_banks():
    return {"status": True, "message": "Banks retrieved", "data": BANKS}

"""Hosted checkout completion - resolves a pending transaction from the checkout page."""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from mockpay.providers import variant_for
from mockpay.providers.base import error_response, get_provider, get_services, schedule_webhook
from mockpay.services.ledger import TransactionNotFoundError

router = APIRouter()


class CompleteRequest(BaseModel):
    reference: Optional[str] = None


@router.post("/mock/complete")
async def complete(req: CompleteRequest, request: Request, background_tasks: BackgroundTasks):
    services = get_services(request)
    provider = get_provider(request)
    if not req.reference:
        return error_response(provider, 400, "reference is required")

    try:
        txn = await run_in_threadpool(services.ledger.get_transaction, provider, req.reference)
    except TransactionNotFoundError:
        return error_response(provider, 404, "Transaction not found")

    resolution = await run_in_threadpool(services.ledger.resolve, txn)
    txn = resolution.transaction
    if resolution.resolved:
        schedule_webhook(
            background_tasks, services, provider,
            variant_for(txn).to_webhook(),
            txn.callback_url,
        )

    return {
        "status": True,
        "message": "Checkout completed" if resolution.resolved else "Transaction already resolved",
        "data": {
            "reference": txn.reference,
            "status": txn.status.value,
            "provider": txn.provider.value,
        },
    }

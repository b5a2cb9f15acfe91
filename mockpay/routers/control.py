"""Control plane - queue outcomes and faults, tune webhook behaviour, reset data."""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from mockpay.providers.base import get_services
from mockpay.services.control import parse_fault, parse_outcome
from mockpay.shared.models import WebhookPolicyUpdate

logger = logging.getLogger("mockpay.control")
router = APIRouter()


class OutcomeRequest(BaseModel):
    outcome: str


class FaultRequest(BaseModel):
    fault: str


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"status": False, "message": message}, status_code=400)


@router.get("/state")
async def get_state(request: Request):
    control = get_services(request).control

    def snapshot() -> dict:
        return {
            "next_outcome": control.outcome.peek().value,
            "next_fault": control.fault.peek().value,
            "webhook_config": control.get_webhook_config().model_dump(),
        }

    return await run_in_threadpool(snapshot)


@router.post("/outcome")
async def set_outcome(req: OutcomeRequest, request: Request):
    services = get_services(request)
    try:
        outcome = await run_in_threadpool(services.control.set_next_outcome, parse_outcome(req.outcome))
    except ValueError:
        return _bad_request("Expected success|failed|cancelled")
    return {"status": True, "next_outcome": outcome.value}


@router.post("/fault")
async def set_fault(req: FaultRequest, request: Request):
    services = get_services(request)
    try:
        fault = await run_in_threadpool(services.control.set_next_fault, parse_fault(req.fault))
    except ValueError:
        return _bad_request("Expected none|server_error|timeout|network_drop")
    return {"status": True, "next_fault": fault.value}


@router.get("/webhook-config")
async def get_webhook_config(request: Request):
    policy = await run_in_threadpool(get_services(request).control.get_webhook_config)
    return policy.model_dump()


@router.patch("/webhook-config")
async def update_webhook_config(req: WebhookPolicyUpdate, request: Request):
    policy = await run_in_threadpool(get_services(request).control.set_webhook_config, req)
    return policy.model_dump()


@router.post("/webhooks/resend")
async def resend_webhook(request: Request, background_tasks: BackgroundTasks):
    services = get_services(request)
    last = await run_in_threadpool(services.webhooks.load_last_webhook)
    if last is None:
        logger.info("No webhook to resend")
        return {"status": True, "resent": False, "message": "No webhook to resend"}
    background_tasks.add_task(services.webhooks.dispatch, last)
    return {"status": True, "resent": True, "event": last.event, "url": last.url}


@router.get("/webhooks")
async def list_webhooks(
    request: Request,
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
):
    services = get_services(request)
    filters = {"status": status} if status else {}
    items = await run_in_threadpool(services.webhooks.list_deliveries, limit=limit, **filters)
    return {"items": items, "total": len(items), "limit": limit}


@router.post("/reset")
async def reset(request: Request):
    await run_in_threadpool(get_services(request).control.reset_all)
    return {"status": True, "message": "Database cleared"}

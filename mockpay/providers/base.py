"""Helpers shared by the provider routers."""

import logging

from fastapi import BackgroundTasks, Request
from fastapi.responses import JSONResponse

from mockpay.services import Services
from mockpay.shared.models import Provider, Webhook, WebhookPayload, provider_error_body

logger = logging.getLogger("mockpay.providers")


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_provider(request: Request) -> Provider:
    return request.app.state.provider


def error_response(provider: Provider, status_code: int, message: str) -> JSONResponse:
    return JSONResponse(provider_error_body(provider, message), status_code=status_code)


def schedule_webhook(
    background_tasks: BackgroundTasks,
    services: Services,
    provider: Provider,
    payload: WebhookPayload,
    callback_url,
) -> bool:
    """Queue delivery to run after the response has gone out."""
    if not callback_url:
        logger.warning(f"No callback URL provided for {provider.value} webhook {payload.event}")
        return False
    webhook = Webhook(
        provider=provider,
        event=payload.event,
        url=callback_url,
        payload=payload.model_dump(),
    )
    background_tasks.add_task(services.webhooks.dispatch, webhook)
    return True

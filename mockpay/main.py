"""Mockpay - application factory and the two-port server."""

import asyncio
import logging
import os
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mockpay import __version__
from mockpay.fault_gate import FaultInjectionGate
from mockpay.protocol import AbortableH11Protocol
from mockpay.providers import flutterwave, paystack
from mockpay.routers import checkout, control, health, logs
from mockpay.services import Services
from mockpay.services.state_machine import InvalidTransitionError
from mockpay.shared.config import MockpayConfig, load_config
from mockpay.shared.file_store import StoreUnavailableError
from mockpay.shared.log_stream import configure_logging
from mockpay.shared.middleware import RequestIdMiddleware, RequestLoggingMiddleware
from mockpay.shared.models import Provider, provider_error_body

logger = logging.getLogger("mockpay.server")

PROVIDER_ROUTERS = {
    Provider.PAYSTACK: paystack.router,
    Provider.FLUTTERWAVE: flutterwave.router,
}


def create_app(provider: Provider, services: Services) -> FastAPI:
    provider = Provider(provider)
    configure_logging(services.config.log_level, services.log_handler)

    app = FastAPI(
        title=f"Mockpay {provider.value.title()} Mock",
        version=__version__,
        description="Local payment provider mock with scripted outcomes and webhooks",
    )
    app.state.services = services
    app.state.provider = provider

    # Middleware (outermost last). The fault gate runs before anything else.
    app.add_middleware(RequestLoggingMiddleware, source=provider.value)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        FaultInjectionGate,
        control=services.control,
        provider=provider,
        timeout_s=services.config.timeout_fault_s,
        drop_delay_s=services.config.network_drop_delay_s,
    )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable(request: Request, exc: StoreUnavailableError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            provider_error_body(provider, "Mock storage unavailable"),
            status_code=500,
        )

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError):
        logger.warning(str(exc))
        return JSONResponse(provider_error_body(provider, str(exc)), status_code=409)

    app.include_router(health.router, tags=["Health"])
    app.include_router(logs.router, tags=["Logs"])
    app.include_router(control.router, prefix="/__control", tags=["Control"])
    app.include_router(checkout.router, tags=["Checkout"])
    app.include_router(PROVIDER_ROUTERS[provider], tags=[provider.value.title()])
    return app


def build_servers(config: MockpayConfig, services: Services) -> list[uvicorn.Server]:
    servers = []
    for provider, port in (
        (Provider.PAYSTACK, config.paystack_port),
        (Provider.FLUTTERWAVE, config.flutterwave_port),
    ):
        server_config = uvicorn.Config(
            create_app(provider, services),
            host=config.host,
            port=port,
            http=AbortableH11Protocol,
            log_config=None,
            access_log=False,
        )
        servers.append(uvicorn.Server(server_config))
    return servers


async def serve(config: MockpayConfig, services: Optional[Services] = None) -> None:
    os.makedirs(config.data_dir, exist_ok=True)
    services = services or Services(config)
    servers = build_servers(config, services)
    logger.info(f"Paystack mock listening on http://{config.host}:{config.paystack_port}")
    logger.info(f"Flutterwave mock listening on http://{config.host}:{config.flutterwave_port}")
    logger.info(f"Data directory: {config.data_dir}")

    tasks = [asyncio.create_task(server.serve()) for server in servers]
    _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    # Both ports live and die together
    for server in servers:
        server.should_exit = True
    if pending:
        await asyncio.gather(*pending)


def run(config: Optional[MockpayConfig] = None) -> None:
    asyncio.run(serve(config or load_config()))

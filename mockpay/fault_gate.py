"""Fault-injection gate for payment, transfer and bank routes.

Each matching request consumes the one-shot fault flag before any handler
runs. Consumption is by path: a read-only GET on a matching route still
uses up the queued fault.
"""

import asyncio
import logging

from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from mockpay.services.control import ControlPlane
from mockpay.shared.models import Fault, Provider, provider_error_body

logger = logging.getLogger("mockpay.fault_gate")

SIMULATED_PATH_PREFIXES = (
    "/transaction",
    "/transactions",
    "/payments",
    "/transfer",
    "/transfers",
    "/mock/complete",
    "/banks",
)

# Set per connection by mockpay.protocol.AbortableH11Protocol
ABORT_STATE_KEY = "mockpay.abort_connection"


class SimulatedNetworkDrop(Exception):
    """Raised when no connection abort hook is available (in-process clients)."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Mockpay simulated network drop on {path}")


def should_simulate(path: str) -> bool:
    if path.startswith("/__"):
        return False
    return any(path.startswith(prefix) for prefix in SIMULATED_PATH_PREFIXES)


class FaultInjectionGate:

    def __init__(
        self,
        app: ASGIApp,
        control: ControlPlane,
        provider: Provider,
        timeout_s: float = 15.0,
        drop_delay_s: float = 0.05,
    ):
        self.app = app
        self.control = control
        self.provider = Provider(provider)
        self.timeout_s = timeout_s
        self.drop_delay_s = drop_delay_s

    def _error(self, status_code: int, message: str) -> JSONResponse:
        return JSONResponse(provider_error_body(self.provider, message), status_code=status_code)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not should_simulate(scope["path"]):
            await self.app(scope, receive, send)
            return

        fault = await run_in_threadpool(self.control.take_next_fault)
        if fault == Fault.NONE:
            await self.app(scope, receive, send)
            return

        logger.warning(f"Simulating {fault.value} on {scope['method']} {scope['path']}")

        if fault == Fault.SERVER_ERROR:
            await self._error(500, "Mockpay simulated 500 error")(scope, receive, send)
            return

        if fault == Fault.TIMEOUT:
            # The handler never runs, so nothing has been sent before this.
            await asyncio.sleep(self.timeout_s)
            await self._error(504, "Mockpay simulated timeout")(scope, receive, send)
            return

        if fault == Fault.NETWORK_DROP:
            await asyncio.sleep(self.drop_delay_s)
            abort = (scope.get("state") or {}).get(ABORT_STATE_KEY)
            if abort is None:
                raise SimulatedNetworkDrop(scope["path"])
            abort()
            # Let the server see connection_lost before we return, so it
            # does not try to write a fallback 500.
            await asyncio.sleep(0)
            return

        await self.app(scope, receive, send)

"""uvicorn HTTP protocol that lets the fault gate sever a connection."""

import asyncio

from uvicorn.protocols.http.h11_impl import H11Protocol

from mockpay.fault_gate import ABORT_STATE_KEY


class AbortableH11Protocol(H11Protocol):
    """h11 protocol exposing ``transport.abort`` through the ASGI scope state.

    uvicorn copies ``app_state`` into ``scope["state"]`` for every request on
    the connection, so the hook is visible to middleware as
    ``scope["state"][ABORT_STATE_KEY]``.
    """

    def connection_made(self, transport: asyncio.Transport) -> None:  # type: ignore[override]
        super().connection_made(transport)
        self.app_state = {**self.app_state, ABORT_STATE_KEY: transport.abort}

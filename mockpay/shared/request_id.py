"""Per-request IDs.

Every inbound request gets an ID (the caller's ``X-Request-Id`` when it sends
one). The ID is echoed on the response, stamped on persisted log lines and
carried on the webhooks that request triggers, so a merchant can tie a
delivery back to the API call that caused it.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

REQUEST_ID_HEADER = "X-Request-Id"
REQUEST_ID_PREFIX = "req_"
# Longer caller-supplied IDs are cut, they end up in every log line
MAX_REQUEST_ID_LENGTH = 128

_request_id: ContextVar[str] = ContextVar("mockpay_request_id", default="")


def new_request_id() -> str:
    return f"{REQUEST_ID_PREFIX}{uuid.uuid4().hex[:16]}"


def current_request_id() -> str:
    return _request_id.get()


def bind_request_id(incoming: Optional[str] = None) -> str:
    """Adopt the caller's ID if it sent a usable one, otherwise mint one."""
    request_id = (incoming or "").strip()[:MAX_REQUEST_ID_LENGTH] or new_request_id()
    _request_id.set(request_id)
    return request_id


def outbound_headers() -> dict:
    """Headers for a webhook POST made on behalf of the current request."""
    headers = {"Content-Type": "application/json"}
    request_id = current_request_id()
    if request_id:
        headers[REQUEST_ID_HEADER] = request_id
    return headers

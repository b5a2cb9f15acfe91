"""Shared middleware for request IDs and request logging."""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from mockpay.shared.request_id import REQUEST_ID_HEADER, bind_request_id


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = bind_request_id(request.headers.get(REQUEST_ID_HEADER))
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, source: str):
        super().__init__(app)
        self.logger = logging.getLogger(f"mockpay.http.{source}")

    async def dispatch(self, request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        duration_ms = round((time.time() - start) * 1000, 2)
        if not request.url.path.startswith("/__logs"):
            self.logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms}ms)"
            )
        return response

"""Per-request correlation id plus one request.complete line per request."""

import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from bookstreak.core.logging import latency_bucket_ms, log_event, request_id_ctx_var

REQUEST_ID_HEADER = "x-request-id"


class RequestIdMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, header_name: str = REQUEST_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get(self.header_name) or uuid4().hex
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            response.headers[self.header_name] = rid
            return response
        finally:
            log_event(
                "info" if status < 500 else "error",
                "request.complete",
                request_id=rid,
                event_type="http",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": status,
                    "latency_bucket": latency_bucket_ms((time.perf_counter() - started) * 1000),
                },
            )
            request_id_ctx_var.reset(token)

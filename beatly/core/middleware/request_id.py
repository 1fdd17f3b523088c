import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from beatly.core.logging import request_id_ctx_var, latency_bucket_ms

logger = logging.getLogger("beatly")

REQUEST_ID_HEADER = "x-request-id"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Correlate every request with a request id.

    Reuses the caller's `x-request-id` when present, echoes it on the
    response and logs one `request.complete` line per request.
    """

    def __init__(self, app, header_name: str = REQUEST_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers[self.header_name] = rid
        logger.info(
            "request.complete",
            extra={
                "request_id": rid,
                "fields": {
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "latency_bucket": latency_bucket_ms(elapsed_ms),
                },
            },
        )
        return response

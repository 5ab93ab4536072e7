import logging
import re
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from coredna.core.logging import latency_bucket_ms, request_id_ctx_var

logger = logging.getLogger("coredna")

# Caller-supplied ids are accepted only as short opaque tokens.
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

# Probe and scrape traffic logs at DEBUG.
_QUIET_PATHS = frozenset({"/healthz", "/readyz", "/metrics"})


def accept_request_id(incoming) -> str:
    """Reuse a well-formed caller id, otherwise mint a new one."""
    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return str(uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request_id for the duration of the request and log completion."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = accept_request_id(request.headers.get(self.header_name))
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)

        response.headers[self.header_name] = rid
        path = request.url.path
        logger.log(
            logging.DEBUG if path in _QUIET_PATHS else logging.INFO,
            "request.complete",
            extra={
                "request_id": rid,
                "path": path,
                "method": request.method,
                "status": response.status_code,
                "latency_bucket": latency_bucket_ms((time.perf_counter() - started) * 1000),
            },
        )
        return response

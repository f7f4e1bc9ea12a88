import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from rewire.core.logging import latency_bucket_ms, request_id_ctx_var, user_id_ctx_var

logger = logging.getLogger("rewire")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Correlate each request with a request_id and, when known, the meter user.

    The user comes from the `user_id` query parameter or the x-user-id
    header. Routes that only learn it from the body set request.state.user_id
    so the completion log still carries it.
    """

    def __init__(self, app, header_name: str = "x-request-id", user_header_name: str = "x-user-id"):
        super().__init__(app)
        self.header_name = header_name
        self.user_header_name = user_header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        user_id = request.query_params.get("user_id") or request.headers.get(self.user_header_name)
        request.state.request_id = rid
        request.state.user_id = user_id

        rid_token = request_id_ctx_var.set(rid)
        user_token = user_id_ctx_var.set(user_id)
        start = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[self.header_name] = rid
            logger.info(
                "request.complete",
                extra={
                    "request_id": rid,
                    "user_id": getattr(request.state, "user_id", None),
                    "path": request.url.path,
                    "method": request.method,
                    "status": response.status_code,
                    "latency_bucket": latency_bucket_ms((time.perf_counter() - start) * 1000),
                },
            )
            return response
        finally:
            user_id_ctx_var.reset(user_token)
            request_id_ctx_var.reset(rid_token)

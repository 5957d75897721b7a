import logging
import time
import uuid
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Per-request access log.

    - Adds request_id (also returned as X-Request-ID)
    - Logs method, path, status, latency and user id when authenticated
    - Never logs bodies, so scanned addresses stay out of the logs
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        start_time = time.time()

        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_failed request_id=%s method=%s path=%s",
                request_id,
                request.method,
                request.url.path,
            )
            raise

        duration_ms = int((time.time() - start_time) * 1000)

        # Set by get_current_user; the ORM instance may be detached by now.
        user_id = getattr(request.state, "user_id", None)

        logger.info(
            "request_completed request_id=%s method=%s path=%s status=%s duration_ms=%d user_id=%s",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            user_id,
        )

        response.headers["X-Request-ID"] = request_id
        return response

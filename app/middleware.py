"""
Request middleware: request ids and access logging.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.logging_config import get_logger

logger = get_logger(__name__)

SLOW_REQUEST_SECONDS = 1.0


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Generate or propagate X-Request-ID, log each request with its duration,
    and warn about slow ones.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        context = {"request_id": request_id}
        session_id = request.headers.get("X-Session-ID")
        if session_id:
            context["session_id"] = session_id

        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Request failed: {e}", exc_info=True, extra=context)
            raise

        duration = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} - {response.status_code} - {duration:.3f}s",
            extra={**context, "status_code": response.status_code, "duration_ms": duration * 1000},
        )
        if duration > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} took {duration:.3f}s",
                extra={**context, "duration_ms": duration * 1000, "slow_request": True},
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}"
        return response

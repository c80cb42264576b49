"""
Standardized error handling and response formatting.

Every failure the thinking core can report is a ThinkingError subclass
carrying a stable code, a machine-readable reason, the offending field where
there is one, and the HTTP status the adapter answers with.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.logging_config import get_logger
from app.monitoring import capture_exception

logger = get_logger(__name__)


class ThinkingError(Exception):
    """Base exception for thinking core errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        reason: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.reason = reason or code.lower()
        self.field = field
        self.details = details or {}
        super().__init__(self.message)

    def to_result(self) -> Dict[str, Any]:
        """Failure payload returned to the transport collaborator."""
        result: Dict[str, Any] = {
            "error": self.message,
            "status": "failed",
            "isError": True,
            "code": self.code,
            "reason": self.reason,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(ThinkingError):
    """Malformed or logically inconsistent submission. Never mutates state."""

    def __init__(
        self,
        message: str,
        reason: str = "invalid_submission",
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=status.HTTP_400_BAD_REQUEST,
            reason=reason,
            field=field,
            details=details,
        )


class NotFoundError(ThinkingError):
    """Referenced sequence, thought or hypothesis does not exist."""

    def __init__(self, message: str, reason: str = "not_found", field: Optional[str] = None):
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            reason=reason,
            field=field,
        )


class LimitExceededError(ThinkingError):
    """A configured memory bound was reached and the operation cannot be pruned into it."""

    def __init__(self, message: str, reason: str = "limit_exceeded", field: Optional[str] = None, limit: Optional[int] = None):
        details = {}
        if limit is not None:
            details["limit"] = limit

        super().__init__(
            message=message,
            code="LIMIT_EXCEEDED",
            status_code=status.HTTP_409_CONFLICT,
            reason=reason,
            field=field,
            details=details,
        )


class PersistenceError(ThinkingError):
    """Durable store unavailable or a write failed."""

    def __init__(self, message: str = "Persistence failed", reason: str = "storage_failure"):
        super().__init__(
            message=message,
            code="PERSISTENCE_ERROR",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            reason=reason,
        )


def format_error_response(
    request: Request,
    error: Exception,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    code: Optional[str] = None,
    message: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """
    Format error response in standard format.

    Args:
        request: FastAPI request object
        error: Exception that occurred
        status_code: HTTP status code
        code: Error code
        message: Error message
        details: Additional error details

    Returns:
        JSONResponse with formatted error
    """
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    if isinstance(error, ThinkingError):
        content = error.to_result()
        error_status = error.status_code
    else:
        content = ThinkingError(
            message=message or "An unexpected error occurred",
            code=code or "INTERNAL_SERVER_ERROR",
            status_code=status_code,
            details=details,
        ).to_result()
        error_status = status_code
    content["requestId"] = request_id

    logger.error(
        f"Error: {content['error']}",
        exc_info=error if not isinstance(error, ThinkingError) else None,
        extra={
            "request_id": request_id,
            "error_code": content["code"],
            "status_code": error_status,
        }
    )

    # Capture in Sentry for server errors
    if error_status >= 500:
        capture_exception(
            error if not isinstance(error, ThinkingError) else Exception(content["error"]),
            context={
                "request_id": request_id,
                "error_code": content["code"],
                "status_code": error_status,
                "path": str(request.url.path),
                "method": request.method,
            }
        )

    return JSONResponse(
        status_code=error_status,
        content=content,
        headers={"X-Request-ID": request_id},
    )


async def thinking_error_handler(request: Request, exc: ThinkingError) -> JSONResponse:
    """Handle ThinkingError exceptions."""
    return format_error_response(request, exc)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTPException exceptions."""
    return format_error_response(
        request,
        exc,
        status_code=exc.status_code,
        code="HTTP_ERROR",
        message=exc.detail,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request body errors raised before the engine sees the submission."""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        })

    return format_error_response(
        request,
        exc,
        status_code=status.HTTP_400_BAD_REQUEST,
        code="VALIDATION_ERROR",
        message="Request validation failed",
        details={"fields": errors},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all other exceptions."""
    return format_error_response(
        request,
        exc,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="INTERNAL_SERVER_ERROR",
        message="An unexpected error occurred",
    )

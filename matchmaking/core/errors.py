"""Typed failures of the matching core and the JSON envelope they map to."""
from typing import Any

import sentry_sdk
import structlog
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = structlog.get_logger()


class ErrorResponse(BaseModel):
    """Standard error envelope returned by all API error handlers."""
    error: str
    message: str
    detail: Any = None
    request_id: str = "unknown"


# ── Domain errors ─────────────────────────────────────────────────────────────


class MatchingError(Exception):
    """Base class for every failure the matching core surfaces to its caller."""

    code = "matching_error"
    retryable = False

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(MatchingError):
    """Malformed input, rejected before any state is touched."""

    code = "validation_error"


class StorageTransientError(MatchingError):
    """A read or write against storage failed or timed out.

    Always safe to retry with the same idempotency key: a repeated
    express-interest call is a no-op once the first one has landed.
    """

    code = "storage_unavailable"
    retryable = True

    def __init__(
        self,
        message: str,
        idempotency_key: tuple[str, ...] | None = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message, detail)
        self.idempotency_key = idempotency_key


class NotConfigured(MatchingError):
    """Required policy configuration (scoring weights) is missing or invalid."""

    code = "not_configured"


_STATUS_BY_ERROR: dict[type[MatchingError], int] = {
    ValidationError: 422,
    StorageTransientError: 503,
    NotConfigured: 500,
}


# ── Handlers ──────────────────────────────────────────────────────────────────


def _request_id(request: Request) -> str:
    return request.headers.get("x-request-id", "unknown")


async def matching_error_handler(request: Request, exc: MatchingError) -> JSONResponse:
    """Map the core's typed failures onto retry-safe HTTP status codes."""
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)),
        500,
    )
    log = logger.warning if status_code < 500 else logger.error
    log(
        "matching_error",
        error=exc.code,
        message=exc.message,
        retryable=exc.retryable,
        path=request.url.path,
        request_id=_request_id(request),
    )
    if status_code >= 500 and not exc.retryable:
        sentry_sdk.capture_exception(exc)

    headers = {"Retry-After": "1"} if exc.retryable else None
    body = ErrorResponse(
        error=exc.code,
        message=exc.message,
        detail=exc.detail,
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a consistent JSON envelope."""
    request_id = _request_id(request)

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        request_id=request_id,
    )

    sentry_sdk.capture_exception(exc)

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Our team has been notified.",
            "request_id": request_id,
        },
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Standardize HTTPException responses into the same JSON envelope."""
    if isinstance(exc.detail, dict):
        error = exc.detail.get("error", f"http_{exc.status_code}")
        message = exc.detail.get("message", str(exc.detail))
        detail: Any = exc.detail.get("detail")
    else:
        error = f"http_{exc.status_code}"
        message = str(exc.detail)
        detail = exc.detail

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": error,
            "message": message,
            "detail": detail,
            "request_id": _request_id(request),
        },
        headers=dict(exc.headers or {}),
    )

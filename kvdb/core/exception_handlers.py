"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain, framework and unexpected) and return the service's error body:

    {"error": "<message>", "success": false}

Design:
- AppError subclasses → 400 / 404 / 429 / 500 depending on type
- Request validation errors (missing query, malformed JSON) → 400
- Framework HTTP errors (unknown route, wrong method) keep their status
- Unexpected Exception → generic 500 (safety net)
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from kvdb.core.errors import (
    AppError,
    NotFoundAppError,
    RateLimitedAppError,
    StorageAppError,
    ValidationAppError,
)
from kvdb.core.logging import get_request_id

logger = logging.getLogger(__name__)


_STATUS_BY_ERROR: dict[type[AppError], int] = {
    ValidationAppError: 400,
    NotFoundAppError: 404,
    RateLimitedAppError: 429,
    StorageAppError: 500,
}


def _status_for(exc: AppError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]
    return 400


def error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    """Build the JSON error body shared by every non-2xx response."""
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "success": False},
        headers=headers,
    )


def _rate_limit_headers(exc: RateLimitedAppError) -> dict[str, str] | None:
    if not exc.details:
        return None
    headers: dict[str, str] = {}
    if "retry_after" in exc.details:
        headers["Retry-After"] = str(exc.details["retry_after"])
    if "limit" in exc.details:
        headers["X-RateLimit-Limit"] = str(exc.details["limit"])
    if "remaining" in exc.details:
        headers["X-RateLimit-Remaining"] = str(exc.details["remaining"])
    return headers or None


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors.

    Storage errors carry the backend's message unchanged; this mirrors the
    service's established behaviour for internal deployments.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the mapped status code.
    """
    status_code = _status_for(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )

    headers = _rate_limit_headers(exc) if isinstance(exc, RateLimitedAppError) else None
    return error_response(status_code, exc.message, headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Map FastAPI request validation failures to a 400 error body."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))

    message = "; ".join(problems) or "Invalid request"
    logger.warning(
        "request_validation_failed",
        extra={
            "error_message": message,
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )
    return error_response(400, message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP errors (404 route, 405 method) with the error body."""
    headers = getattr(exc, "headers", None)
    return error_response(exc.status_code, str(exc.detail), dict(headers) if headers else None)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic message.

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with generic error (no implementation details leaked).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return error_response(500, "An unexpected error occurred. Please try again later.")


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance.

    Example:
        >>> from fastapi import FastAPI
        >>> from kvdb.core.exception_handlers import setup_exception_handlers
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(RequestValidationError)(request_validation_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)

"""
HTTP error shape and exception handlers.

Every failure leaves the API as ``{"success": false, "error": ..., "code": ...}``
(plus ``details`` for validation failures).
"""

import math
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from justhigher.services.errors import (
    AlreadySubscribedError,
    BackendError,
    ConflictError,
    LoadError,
    NotFoundError,
    OperationCancelledError,
    RateLimitError,
    ServiceError,
    ValidationError,
)
from justhigher.validation import format_error_details

# Request parts FastAPI prefixes onto validation error locations.
REQUEST_LOCATIONS = ("body", "query", "path", "header", "cookie")

# Checked in order; the first matching type wins.
SERVICE_ERROR_MAP: list[tuple[type[ServiceError], int, str, str]] = [
    (ValidationError, 400, "VALIDATION_ERROR", "Validation failed"),
    (AlreadySubscribedError, 409, "ALREADY_SUBSCRIBED", "Email address is already subscribed"),
    (ConflictError, 409, "CONFLICT", "Resource conflict"),
    (NotFoundError, 404, "NOT_FOUND", "Resource not found"),
    (OperationCancelledError, 503, "REQUEST_CANCELLED", "Request was cancelled"),
    (LoadError, 500, "INTERNAL_ERROR", "Internal server error"),
    (BackendError, 500, "INTERNAL_ERROR", "Internal server error"),
]

HTTP_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


class ApiError(Exception):
    """An error response decided by a route handler."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: list[dict[str, str]] | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details
        self.headers = headers
        super().__init__(message)


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: list[dict[str, str]] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "error": message, "code": code}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def internal_error_response(
    request: Request, error: BaseException, context: str
) -> JSONResponse:
    """Log and record an unexpected failure; detail is hidden in production."""
    container = request.app.state.container
    container.errors.add(error, context)
    logger.opt(exception=error).error(f"Unhandled error in {context}: {error}")

    message = "Internal server error"
    if not container.settings.is_production:
        message = f"{message}: {type(error).__name__}: {error}"
    return error_response(500, "INTERNAL_ERROR", message)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(
        exc.status_code, exc.code, exc.message, exc.details, exc.headers
    )


async def rate_limit_error_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    headers = {
        "X-RateLimit-Limit": str(exc.limit),
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(int(exc.reset_at * 1000)),
    }
    if exc.retry_after is not None:
        headers["Retry-After"] = str(max(0, math.ceil(exc.retry_after)))
    return error_response(429, "RATE_LIMIT_EXCEEDED", str(exc), headers=headers)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    for error_type, status_code, code, message in SERVICE_ERROR_MAP:
        if isinstance(exc, error_type):
            if status_code >= 500:
                request.app.state.container.errors.add(exc, request.url.path)
                logger.warning(f"{code} on {request.url.path}: {exc}")
            details = exc.details if isinstance(exc, ValidationError) else None
            return error_response(status_code, code, message, details)
    return internal_error_response(request, exc, request.url.path)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = format_error_details(exc.errors(), skip_locations=REQUEST_LOCATIONS)
    return error_response(400, "VALIDATION_ERROR", "Validation failed", details)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    code = HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else code.replace("_", " ").capitalize()
    return error_response(exc.status_code, code, message, headers=exc.headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RateLimitError, rate_limit_error_handler)
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

"""API middleware and error handlers.

Provides:
- Request ID correlation
- Mapping of domain errors to HTTP responses
"""

import math
import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from fulfillment.domain.exceptions import (
    CatalogUnavailableError,
    DomainError,
    DuplicateRecordError,
    GatewayError,
    InsufficientStockError,
    InvalidStateTransitionError,
    LockTimeoutError,
    MoneyError,
    NotFoundError,
    ValidationError,
    WebhookSignatureError,
)

logger = structlog.get_logger()


# ============================================================================
# Request ID Middleware
# ============================================================================


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add request ID for correlation.

    Generates or extracts a request ID and adds it to:
    - Request state for access in handlers
    - Response headers for client correlation
    - Log context for tracing
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        """Process request with correlation ID.

        Args:
            request: Incoming request.
            call_next: Next middleware/handler.

        Returns:
            Response with request ID header.
        """
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=getattr(response, "status_code", 500),
                duration_ms=round(duration_ms, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[self.HEADER_NAME] = request_id
        return response


# ============================================================================
# Error Handlers
# ============================================================================


# Most specific class first; the first isinstance match wins.
_ERROR_STATUS: list[tuple[type[DomainError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MoneyError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InsufficientStockError, status.HTTP_409_CONFLICT),
    (DuplicateRecordError, status.HTTP_409_CONFLICT),
    (InvalidStateTransitionError, status.HTTP_409_CONFLICT),
    (LockTimeoutError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (CatalogUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (GatewayError, status.HTTP_502_BAD_GATEWAY),
    (WebhookSignatureError, status.HTTP_400_BAD_REQUEST),
]


def status_for(exc: DomainError) -> int:
    for error_class, status_code in _ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
    details: dict | list | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the standard error envelope."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details if details is not None else {},
            "request_id": getattr(request.state, "request_id", None),
        },
        headers=headers,
    )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Handle domain errors with consistent format."""
    status_code = status_for(exc)
    headers = None
    if isinstance(exc, LockTimeoutError):
        wait_ms = exc.details.get("wait_timeout_ms") or 1000
        headers = {"Retry-After": str(max(1, math.ceil(wait_ms / 1000)))}

    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request failed",
        path=request.url.path,
        method=request.method,
        error_code=exc.error_code,
        error=exc.message,
    )
    return error_response(
        request,
        status_code,
        exc.error_code,
        exc.message,
        details=exc.details,
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", {})
    else:
        error_code = "ERROR"
        message = str(detail)
        details = {}
    return error_response(
        request,
        exc.status_code,
        error_code,
        message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report request body/header validation failures as VALIDATION_ERROR."""
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        ValidationError.error_code,
        "Request validation failed",
        details=details,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent format."""
    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An internal error occurred",
    )


# ============================================================================
# Setup
# ============================================================================


def setup_middleware(app: FastAPI) -> None:
    """Configure middleware and exception handlers for the application.

    Args:
        app: FastAPI application instance.
    """
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

"""
Shared API Middleware
======================

Request tracing, access logging and the error envelope returned by
every route.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ticketing_core.core import (
    ApplicationException,
    DomainException,
    ResourceNotFoundException,
)
from ticketing_core.shared.infrastructure.logging import bind_correlation_id, get_logger

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Reads or mints the request correlation ID.

    The ID is bound for the lifetime of the request so service and
    repository logs carry it, and echoed back in the response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        with bind_correlation_id(correlation_id):
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log: one line per request with status and timing."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        context = {
            "correlation_id": _correlation_id(request),
            "method": request.method,
            "path": request.url.path,
        }

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    **context,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000),
                }
            )
            raise

        logger.info(
            "Request completed",
            extra={
                **context,
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000),
            }
        )
        return response


def _error_body(request: Request, detail: str, **extra) -> dict:
    return {
        "detail": detail,
        "correlation_id": _correlation_id(request),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **extra,
    }


def _status_for(exc: ApplicationException) -> int:
    if isinstance(exc, ResourceNotFoundException):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, DomainException):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Map application errors to HTTP responses.

    Unknown tickets are 404. Rule violations such as an illegal transition,
    a missing resolution or a bad assignee are 400. Anything else is 500.
    """
    status_code = _status_for(exc)

    logger.warning(
        "Request rejected",
        extra={
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
            "status_code": status_code,
        }
    )
    return JSONResponse(
        status_code=status_code,
        content=_error_body(request, exc.message, error=type(exc).__name__, details=exc.details),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log and return a generic 500."""
    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": _correlation_id(request),
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    # Internal details only leave the process in development
    is_dev = getattr(getattr(request.app.state, "settings", None), "environment", None) == "development"

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "Internal server error", debug_info=str(exc) if is_dev else None),
    )

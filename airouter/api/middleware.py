"""
FastAPI middleware for request logging and routing error responses.
"""
import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from airouter.core.exceptions import (
    AllProvidersFailedError,
    PersistenceError,
    ProviderError,
    ProviderNotFoundError,
)
from airouter.core.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Request Logging Middleware
# ============================================================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all incoming requests and responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            request_id=request_id,
            method=request.method,
            path=request.url.path
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                error=str(e),
                exc_info=True
            )
            raise

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "Request completed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)
        return response


# ============================================================================
# Error Handlers
# ============================================================================

def _error_response(http_status: int, code: str, message: str, **details) -> JSONResponse:
    content = {"error": {"code": code, "message": message}}
    if details:
        content["error"]["details"] = details
    return JSONResponse(status_code=http_status, content=content)


async def provider_not_found_handler(request: Request, exc: ProviderNotFoundError):
    return _error_response(
        status.HTTP_404_NOT_FOUND,
        "no_provider_configured",
        str(exc),
        organization_id=exc.organization_id,
        capability=exc.capability
    )


async def all_providers_failed_handler(request: Request, exc: AllProvidersFailedError):
    return _error_response(
        status.HTTP_502_BAD_GATEWAY,
        "all_providers_failed",
        "Every eligible provider failed",
        attempts=[{"provider_id": pid, "error": err} for pid, err in exc.attempts]
    )


async def provider_error_handler(request: Request, exc: ProviderError):
    return _error_response(
        status.HTTP_502_BAD_GATEWAY,
        "provider_error",
        str(exc),
        status_code=exc.status_code,
        retryable=exc.retryable
    )


async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error("Persistence failure", error=str(exc))
    return _error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "store_unavailable",
        "Provider store is unavailable"
    )


def setup_middleware(app: FastAPI) -> None:
    """
    Setup middleware and error handlers for the application.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(ProviderNotFoundError, provider_not_found_handler)
    app.add_exception_handler(AllProvidersFailedError, all_providers_failed_handler)
    app.add_exception_handler(ProviderError, provider_error_handler)
    app.add_exception_handler(PersistenceError, persistence_error_handler)

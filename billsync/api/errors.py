"""
API error handling

Converts domain exceptions into {"error": {"code", "message"}} responses.

Status code mapping:
- BillFetchError → 502 Bad Gateway
- Other ProviderError → 502 Bad Gateway
- NotFoundError, ProviderNotFoundError → 404 Not Found
- InvalidCredentialsError → 400 Bad Request
- DuplicateError → 409 Conflict
- Other StorageError → 503 Service Unavailable
- RequestRateLimitExceeded → 429 Too Many Requests
"""

from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from billsync.api.schemas import ErrorDetail, ErrorResponse
from billsync.orchestrator import BillFetchError
from billsync.rate_limiter import RequestRateLimitExceeded
from billsync.services.providers import (
    InvalidCredentialsError,
    ProviderError,
    ProviderNotFoundError,
)
from billsync.services.storage import DuplicateError, NotFoundError, StorageError


logger = structlog.get_logger(__name__)


def _error(status_code: int, code: str, message: str, details: Optional[dict] = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _handle_bill_fetch_error(request: Request, exc: BillFetchError) -> JSONResponse:
    logger.warning("bill_fetch_failed", path=request.url.path, account_id=exc.account_id, error=str(exc))
    return _error(502, "BILL_FETCH_FAILED", "Failed to fetch bills", {"account_id": exc.account_id})


async def _handle_provider_error(request: Request, exc: ProviderError) -> JSONResponse:
    logger.warning("provider_error", path=request.url.path, error=str(exc))
    return _error(502, "PROVIDER_ERROR", str(exc))


async def _handle_provider_not_found(request: Request, exc: ProviderNotFoundError) -> JSONResponse:
    return _error(404, "PROVIDER_NOT_FOUND", str(exc))


async def _handle_invalid_credentials(request: Request, exc: InvalidCredentialsError) -> JSONResponse:
    return _error(400, "INVALID_CREDENTIALS", str(exc))


async def _handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, "NOT_FOUND", str(exc))


async def _handle_duplicate(request: Request, exc: DuplicateError) -> JSONResponse:
    return _error(409, "DUPLICATE", str(exc))


async def _handle_storage_error(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("storage_error", path=request.url.path, error=str(exc))
    return _error(503, "STORAGE_UNAVAILABLE", "Storage is unavailable")


async def _handle_rate_limited(request: Request, exc: RequestRateLimitExceeded) -> JSONResponse:
    logger.info("request_rate_limited", path=request.url.path, client=exc.client_key)
    return _error(429, "RATE_LIMIT_EXCEEDED", str(exc), {"limit": exc.limit, "window_seconds": exc.window_seconds})


def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI application."""
    app.add_exception_handler(BillFetchError, _handle_bill_fetch_error)
    app.add_exception_handler(ProviderNotFoundError, _handle_provider_not_found)
    app.add_exception_handler(InvalidCredentialsError, _handle_invalid_credentials)
    app.add_exception_handler(ProviderError, _handle_provider_error)
    app.add_exception_handler(NotFoundError, _handle_not_found)
    app.add_exception_handler(DuplicateError, _handle_duplicate)
    app.add_exception_handler(StorageError, _handle_storage_error)
    app.add_exception_handler(RequestRateLimitExceeded, _handle_rate_limited)

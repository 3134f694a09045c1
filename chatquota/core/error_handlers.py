"""
Global exception handlers mapping domain errors to HTTP responses.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from chatquota.core.errors import (
    ChatQuotaError,
    ValidationError,
    NotFoundError,
    QuotaExceeded,
    EntitlementDenied,
    UpstreamError,
    PersistenceError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    QuotaExceeded: status.HTTP_429_TOO_MANY_REQUESTS,
    EntitlementDenied: status.HTTP_402_PAYMENT_REQUIRED,
    UpstreamError: status.HTTP_502_BAD_GATEWAY,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def create_error_response(exc: ChatQuotaError) -> dict:
    content = {"error": exc.code, "message": exc.message}
    if isinstance(exc, UpstreamError):
        content["kind"] = exc.kind
    if exc.detail:
        content["detail"] = exc.detail
    return content


async def chatquota_exception_handler(request: Request, exc: ChatQuotaError):
    """Handles every ChatQuotaError subclass."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            status_code = code
            break

    if status_code >= 500:
        logger.error(f"{exc.code}: {exc.message} for {request.method} {request.url.path}")
    else:
        logger.warning(f"{exc.code}: {exc.message} for {request.method} {request.url.path}")

    return JSONResponse(status_code=status_code, content=create_error_response(exc))


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ChatQuotaError, chatquota_exception_handler)

"""FastAPI exception handlers converting SyncError to HTTP responses.

Status codes are chosen for the PMS provider's retry policy:
- 401 Unauthorized: signature missing or invalid (do not retry)
- 400 Bad Request: body or field could not be used (do not retry)
- 503 Service Unavailable: storage down (retry later)
- 404 Not Found: unknown property or webhook event
- 502 Bad Gateway: a calendar feed failed and no data could be served

Usage:
    from pms_sync_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from pms_sync.models.errors import ErrorCode, SyncError
from pms_sync.utils.logging import get_logger

logger = get_logger(__name__)

# Map ErrorCode to HTTP status codes
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    # Webhook authentication -> 401 Unauthorized
    ErrorCode.SIGNATURE_MISSING: HTTP_401_UNAUTHORIZED,
    ErrorCode.SIGNATURE_INVALID: HTTP_401_UNAUTHORIZED,
    ErrorCode.SECRET_NOT_CONFIGURED: HTTP_401_UNAUTHORIZED,
    # Payload validation -> 400 Bad Request
    ErrorCode.INVALID_PAYLOAD: HTTP_400_BAD_REQUEST,
    ErrorCode.MISSING_ENTITY_ID: HTTP_400_BAD_REQUEST,
    ErrorCode.UNSUPPORTED_EVENT: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_FIELD: HTTP_400_BAD_REQUEST,
    # Storage -> 503 so the sender retries
    ErrorCode.STORAGE_UNAVAILABLE: HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.NOT_FOUND: HTTP_404_NOT_FOUND,
    # Calendar feeds
    ErrorCode.FEED_INVALID_URL: HTTP_400_BAD_REQUEST,
    ErrorCode.FEED_UNREACHABLE: HTTP_502_BAD_GATEWAY,
    ErrorCode.FEED_TIMEOUT: HTTP_502_BAD_GATEWAY,
    ErrorCode.FEED_UNAUTHORIZED: HTTP_502_BAD_GATEWAY,
    ErrorCode.FEED_NOT_FOUND: HTTP_502_BAD_GATEWAY,
    ErrorCode.FEED_SERVER_ERROR: HTTP_502_BAD_GATEWAY,
    ErrorCode.FEED_INVALID: HTTP_502_BAD_GATEWAY,
    ErrorCode.FEED_UNKNOWN: HTTP_502_BAD_GATEWAY,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """HTTP status for an ErrorCode, defaulting to 400."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
    """Convert a SyncError into an ErrorResponse body."""
    status_code = get_http_status_for_error(exc.code)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.describe())
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.describe())

    return JSONResponse(
        status_code=status_code,
        content=exc.to_error_response().model_dump(mode="json"),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for uncaught exceptions; internal details are not exposed."""
    logger.exception("Unhandled exception: %s", exc)

    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error_code": "ERR_INTERNAL",
            "message": "An unexpected error occurred",
            "recovery": "Please try again later or contact support",
            "details": None,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(SyncError, sync_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)

"""Standard error codes for the PMS sync subsystem.

Every failure that crosses the subsystem boundary is a SyncError carrying
an ErrorCode. The HTTP layer maps codes to status codes; the audit log
stores the human-readable message.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .enums import FetchErrorKind


class ErrorCode(str, Enum):
    """Standard error codes for sync operations."""

    # Webhook authentication (ERR_SYNC_001-ERR_SYNC_003)
    SIGNATURE_MISSING = "ERR_SYNC_001"
    SIGNATURE_INVALID = "ERR_SYNC_002"
    SECRET_NOT_CONFIGURED = "ERR_SYNC_003"

    # Payload validation (ERR_SYNC_010-ERR_SYNC_013)
    INVALID_PAYLOAD = "ERR_SYNC_010"
    MISSING_ENTITY_ID = "ERR_SYNC_011"
    UNSUPPORTED_EVENT = "ERR_SYNC_012"
    INVALID_FIELD = "ERR_SYNC_013"

    # Storage (ERR_SYNC_020-ERR_SYNC_021)
    STORAGE_UNAVAILABLE = "ERR_SYNC_020"
    NOT_FOUND = "ERR_SYNC_021"

    # Calendar feed (ERR_SYNC_030-ERR_SYNC_037)
    FEED_UNREACHABLE = "ERR_SYNC_030"
    FEED_TIMEOUT = "ERR_SYNC_031"
    FEED_UNAUTHORIZED = "ERR_SYNC_032"
    FEED_NOT_FOUND = "ERR_SYNC_033"
    FEED_SERVER_ERROR = "ERR_SYNC_034"
    FEED_INVALID_URL = "ERR_SYNC_035"
    FEED_INVALID = "ERR_SYNC_036"
    FEED_UNKNOWN = "ERR_SYNC_037"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.SIGNATURE_MISSING: "Webhook signature header is missing",
    ErrorCode.SIGNATURE_INVALID: "Webhook signature does not match the request body",
    ErrorCode.SECRET_NOT_CONFIGURED: "Webhook secret is not configured",
    ErrorCode.INVALID_PAYLOAD: "Webhook payload could not be parsed",
    ErrorCode.MISSING_ENTITY_ID: "Webhook payload is missing the entity identifier",
    ErrorCode.UNSUPPORTED_EVENT: "Webhook event type is not supported",
    ErrorCode.INVALID_FIELD: "Webhook payload contains an invalid field",
    ErrorCode.STORAGE_UNAVAILABLE: "Storage is temporarily unavailable",
    ErrorCode.NOT_FOUND: "Requested record was not found",
    ErrorCode.FEED_UNREACHABLE: "The calendar server could not be reached",
    ErrorCode.FEED_TIMEOUT: "The calendar server took too long to respond",
    ErrorCode.FEED_UNAUTHORIZED: "The calendar feed requires authorization",
    ErrorCode.FEED_NOT_FOUND: "The calendar feed was not found",
    ErrorCode.FEED_SERVER_ERROR: "The calendar server returned an error",
    ErrorCode.FEED_INVALID_URL: "The calendar feed URL is not a valid http(s) URL",
    ErrorCode.FEED_INVALID: "The calendar feed does not contain calendar data",
    ErrorCode.FEED_UNKNOWN: "The calendar feed could not be loaded",
}

# Recovery suggestions for operators and UI
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.SIGNATURE_MISSING: "Ensure the provider sends the signature header",
    ErrorCode.SIGNATURE_INVALID: "Verify the webhook secret matches the provider's signing key",
    ErrorCode.SECRET_NOT_CONFIGURED: "Set PMS_WEBHOOK_SECRET or PMS_WEBHOOK_SECRET_PARAMETER",
    ErrorCode.INVALID_PAYLOAD: "Send a JSON object with 'event' and 'data' fields",
    ErrorCode.MISSING_ENTITY_ID: "Include 'id' or '_id' in the entity data",
    ErrorCode.UNSUPPORTED_EVENT: "Use property/reservation with created/updated/deleted",
    ErrorCode.INVALID_FIELD: "Correct the field in the upstream record and resend",
    ErrorCode.STORAGE_UNAVAILABLE: "Retry delivery later",
    ErrorCode.NOT_FOUND: "Check the identifier and try again",
    ErrorCode.FEED_UNREACHABLE: "Check the host name in the feed URL",
    ErrorCode.FEED_TIMEOUT: "Retry later; the calendar server may be overloaded",
    ErrorCode.FEED_UNAUTHORIZED: "Use the private export URL from the booking channel",
    ErrorCode.FEED_NOT_FOUND: "Copy the feed URL again from the booking channel",
    ErrorCode.FEED_SERVER_ERROR: "Retry later; the calendar server is failing",
    ErrorCode.FEED_INVALID_URL: "Enter a URL starting with http:// or https://",
    ErrorCode.FEED_INVALID: "Make sure the URL points to an .ics export",
    ErrorCode.FEED_UNKNOWN: "Retry later or contact support",
}

FETCH_ERROR_CODES: dict[FetchErrorKind, ErrorCode] = {
    FetchErrorKind.UNREACHABLE: ErrorCode.FEED_UNREACHABLE,
    FetchErrorKind.TIMEOUT: ErrorCode.FEED_TIMEOUT,
    FetchErrorKind.UNAUTHORIZED: ErrorCode.FEED_UNAUTHORIZED,
    FetchErrorKind.NOT_FOUND: ErrorCode.FEED_NOT_FOUND,
    FetchErrorKind.SERVER_ERROR: ErrorCode.FEED_SERVER_ERROR,
    FetchErrorKind.INVALID_URL: ErrorCode.FEED_INVALID_URL,
    FetchErrorKind.INVALID_FEED: ErrorCode.FEED_INVALID,
    FetchErrorKind.UNKNOWN: ErrorCode.FEED_UNKNOWN,
}


class ErrorResponse(BaseModel):
    """Standard error body returned by the API for SyncError failures."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code."""
        return cls(
            error_code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class SyncError(Exception):
    """Base exception for sync subsystem failures.

    Can be caught and converted to an ErrorResponse for API responses.
    """

    retryable: bool = False

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.describe())

    def describe(self) -> str:
        """Message plus the most specific detail, for logs and audit rows."""
        if self.details and "reason" in self.details:
            return f"{self.message}: {self.details['reason']}"
        return self.message

    def to_error_response(self) -> ErrorResponse:
        return ErrorResponse.from_code(self.code, self.details)


class AuthenticationError(SyncError):
    """Webhook signature missing, invalid, or unverifiable."""


class ValidationError(SyncError):
    """Malformed or incomplete webhook payload."""

    def __init__(
        self,
        reason: str,
        code: ErrorCode = ErrorCode.INVALID_FIELD,
        field: str | None = None,
    ):
        details = {"reason": reason}
        if field:
            details["field"] = field
        super().__init__(code, details)


class StorageError(SyncError):
    """Persistence layer unavailable; the caller should retry."""

    retryable = True

    def __init__(self, operation: str, reason: str):
        super().__init__(
            ErrorCode.STORAGE_UNAVAILABLE,
            {"operation": operation, "reason": reason},
        )


class NotFoundError(SyncError):
    """A requested record does not exist."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            ErrorCode.NOT_FOUND,
            {"resource": resource, "id": identifier},
        )

    def describe(self) -> str:
        return f"{self.details['resource']} {self.details['id']} not found"


class FetchError(SyncError):
    """Calendar feed could not be fetched or parsed."""

    def __init__(
        self,
        kind: FetchErrorKind,
        reason: str | None = None,
        feed_url: str | None = None,
    ):
        self.kind = kind
        details: dict[str, str] = {"kind": kind.value}
        if reason:
            details["reason"] = reason
        if feed_url:
            details["feed_url"] = feed_url
        super().__init__(FETCH_ERROR_CODES[kind], details)

    @property
    def user_message(self) -> str:
        """Guidance suitable for display next to a property's calendar."""
        return f"{self.message}. {self.recovery}."

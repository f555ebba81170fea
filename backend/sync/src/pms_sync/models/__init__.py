"""Data models for the PMS sync subsystem."""

from .calendar import CacheEntry, CachedError, CalendarError, CalendarEvent, PropertyCalendar
from .enums import (
    CalendarStatus,
    EntityType,
    FetchErrorKind,
    SyncAction,
    SyncStatus,
    SyncType,
    WebhookEventType,
)
from .errors import (
    AuthenticationError,
    ErrorCode,
    ErrorResponse,
    FetchError,
    NotFoundError,
    StorageError,
    SyncError,
    ValidationError,
)
from .external import ExternalProperty, ExternalReservation
from .sync_log import SyncLogEntry
from .webhook import WebhookEnvelope, WebhookEvent

__all__ = [
    # Enums
    "CalendarStatus",
    "EntityType",
    "FetchErrorKind",
    "SyncAction",
    "SyncStatus",
    "SyncType",
    "WebhookEventType",
    # Errors
    "AuthenticationError",
    "ErrorCode",
    "ErrorResponse",
    "FetchError",
    "NotFoundError",
    "StorageError",
    "SyncError",
    "ValidationError",
    # Models
    "CacheEntry",
    "CachedError",
    "CalendarError",
    "CalendarEvent",
    "ExternalProperty",
    "ExternalReservation",
    "PropertyCalendar",
    "SyncLogEntry",
    "WebhookEnvelope",
    "WebhookEvent",
]

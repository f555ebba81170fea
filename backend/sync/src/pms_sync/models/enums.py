"""Enumeration types for PMS sync data models."""

from enum import Enum


class WebhookEventType(str, Enum):
    """Action carried by an upstream webhook."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class EntityType(str, Enum):
    """Upstream entity kinds mirrored locally."""

    PROPERTY = "property"
    RESERVATION = "reservation"


class SyncType(str, Enum):
    """Kind of operation recorded in the sync audit log."""

    WEBHOOK_PROPERTY = "webhook_property"
    WEBHOOK_RESERVATION = "webhook_reservation"
    WEBHOOK_UNKNOWN = "webhook_unknown"
    CALENDAR_FETCH = "calendar_fetch"


class SyncStatus(str, Enum):
    """Outcome of a sync operation."""

    SUCCESS = "success"
    ERROR = "error"


class SyncAction(str, Enum):
    """Action taken (or attempted) by a sync operation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    FETCH = "fetch"
    NONE = "none"


class FetchErrorKind(str, Enum):
    """User-facing classification of calendar feed failures."""

    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    INVALID_URL = "invalid_url"
    INVALID_FEED = "invalid_feed"
    UNKNOWN = "unknown"


class CalendarStatus(str, Enum):
    """Health of a property's calendar feed as shown to the UI."""

    NOT_CONFIGURED = "not_configured"
    HEALTHY = "healthy"
    STALE = "stale"
    ERROR = "error"


# Upstream spellings that map onto the local vocabulary
ENTITY_TYPE_ALIASES: dict[str, EntityType] = {
    "property": EntityType.PROPERTY,
    "listing": EntityType.PROPERTY,
    "reservation": EntityType.RESERVATION,
}

EVENT_TYPE_ALIASES: dict[str, WebhookEventType] = {
    "created": WebhookEventType.CREATED,
    "updated": WebhookEventType.UPDATED,
    "cancelled": WebhookEventType.UPDATED,
    "canceled": WebhookEventType.UPDATED,
    "deleted": WebhookEventType.DELETED,
}

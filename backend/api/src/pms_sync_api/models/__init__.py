"""API request/response models."""

from .responses import (
    CalendarFeedResponse,
    CalendarFeedUpdate,
    HealthResponse,
    SyncLogList,
    WebhookAck,
    WebhookEventList,
)

__all__ = [
    "CalendarFeedResponse",
    "CalendarFeedUpdate",
    "HealthResponse",
    "SyncLogList",
    "WebhookAck",
    "WebhookEventList",
]

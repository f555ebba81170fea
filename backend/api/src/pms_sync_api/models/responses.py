"""HTTP layer request/response models.

Domain models (WebhookEvent, PropertyCalendar, ...) live in pms_sync.models
and are returned directly where they fit; this module only holds wrappers.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from pms_sync.models.sync_log import SyncLogEntry
from pms_sync.models.webhook import WebhookEvent


class WebhookAck(BaseModel):
    """Acknowledgement returned to the PMS for an accepted delivery."""

    received: bool = True
    event_id: str = Field(..., description="Local intake id of the delivery")
    entity_type: str
    event_type: str
    entity_id: str
    processing_result: str = Field(..., description="success or error")
    action: str = Field(..., description="create, update, delete or none")
    message: str


class WebhookEventList(BaseModel):
    events: list[WebhookEvent]
    count: int


class SyncLogList(BaseModel):
    entries: list[SyncLogEntry]
    count: int


class CalendarFeedUpdate(BaseModel):
    """Body of PUT /properties/{id}/calendar-feed; null or "" removes the feed."""

    ical_url: str | None = Field(
        default=None,
        description="http(s) URL of the property's iCalendar export",
        examples=["https://www.airbnb.com/calendar/ical/123.ics?s=abc"],
    )


class CalendarFeedResponse(BaseModel):
    property_id: str
    ical_url: str | None


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    service: str
    environment: str

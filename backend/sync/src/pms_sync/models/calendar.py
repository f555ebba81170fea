"""Calendar feed models: parsed events, cache entries and UI responses."""

from dataclasses import dataclass, field
from datetime import date, datetime

from pydantic import BaseModel, Field

from .enums import CalendarStatus, FetchErrorKind
from .errors import FetchError


class CalendarEvent(BaseModel):
    """A booking parsed from an iCalendar VEVENT."""

    start: datetime = Field(..., description="Start instant (UTC)")
    end: datetime = Field(..., description="End instant (UTC, exclusive for all-day)")
    checkout: date = Field(..., description="Guest departure day")
    title: str = Field(default="Reservation")
    uid: str = Field(..., min_length=1)
    status: str = Field(default="confirmed")


@dataclass(frozen=True)
class CachedError:
    """Most recent fetch failure recorded for a feed URL."""

    message: str
    kind: FetchErrorKind
    occurred_at: datetime


@dataclass
class CacheEntry:
    """Per-URL cache state. ``events`` is None until a fetch has succeeded."""

    events: list[CalendarEvent] | None = None
    fetched_at: datetime | None = None
    last_error: CachedError | None = None
    error: FetchError | None = field(default=None, repr=False)

    @property
    def has_data(self) -> bool:
        return self.events is not None


class CalendarError(BaseModel):
    """Error shown next to a property's calendar."""

    kind: FetchErrorKind
    message: str
    occurred_at: datetime | None = None


class PropertyCalendar(BaseModel):
    """Calendar of one property with the health of its feed."""

    property_id: str
    status: CalendarStatus
    feed_url: str | None = None
    events: list[CalendarEvent] = Field(default_factory=list)
    fetched_at: datetime | None = None
    error: CalendarError | None = None

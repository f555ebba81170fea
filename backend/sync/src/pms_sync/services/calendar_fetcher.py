"""Retrieves and parses remote iCalendar feeds.

Channel exports (Airbnb, Booking.com, VRBO...) are often slow or slightly
malformed. Entries that cannot be used are skipped, and a document that
fails to parse as a whole is salvaged block by block.
"""

import re
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlparse

import httpx
from icalendar import Calendar, Event

from pms_sync.config import SyncSettings
from pms_sync.models.calendar import CalendarEvent
from pms_sync.models.enums import FetchErrorKind, SyncAction, SyncStatus, SyncType
from pms_sync.models.errors import FetchError
from pms_sync.models.sync_log import SyncLogEntry
from pms_sync.services.sync_audit import SyncAuditLog
from pms_sync.utils.logging import get_logger, log_sync_operation

logger = get_logger(__name__)

DEFAULT_TITLE = "Reservation"
DEFAULT_STATUS = "confirmed"

# Servers that refuse HEAD answer with these; the GET still decides
PROBE_IGNORED_STATUSES = frozenset({405, 501})

VEVENT_BLOCK = re.compile(r"BEGIN:VEVENT\r?\n.*?END:VEVENT", re.DOTALL | re.IGNORECASE)


def validate_feed_url(feed_url: str) -> str:
    """Return the stripped URL if it is an absolute http(s) URL.

    Raises:
        FetchError: INVALID_URL otherwise.
    """
    url = (feed_url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
        raise FetchError(FetchErrorKind.INVALID_URL, f"not an http(s) URL: {url!r}", url)
    return url


def classify_status(status_code: int) -> FetchErrorKind:
    """Map an HTTP error status onto a user-facing error kind."""
    if status_code in (401, 403):
        return FetchErrorKind.UNAUTHORIZED
    if status_code in (404, 410):
        return FetchErrorKind.NOT_FOUND
    if status_code >= 500:
        return FetchErrorKind.SERVER_ERROR
    return FetchErrorKind.UNKNOWN


def classify_exception(exc: httpx.HTTPError) -> FetchErrorKind:
    """Map an httpx transport failure onto a user-facing error kind."""
    if isinstance(exc, httpx.TimeoutException):
        return FetchErrorKind.TIMEOUT
    if isinstance(exc, (httpx.ConnectError, httpx.NetworkError)):
        return FetchErrorKind.UNREACHABLE
    if isinstance(exc, httpx.UnsupportedProtocol):
        return FetchErrorKind.INVALID_URL
    return FetchErrorKind.UNKNOWN


def _to_utc(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    raise ValueError(f"unsupported date value {value!r}")


def event_from_component(component: Any) -> CalendarEvent | None:
    """Build a CalendarEvent from a VEVENT, or None if it lacks valid dates."""
    dtstart = component.get("DTSTART")
    dtend = component.get("DTEND")
    if dtstart is None or dtend is None:
        logger.warning(
            "Skipping VEVENT %s without DTSTART/DTEND", component.get("UID", "<no uid>")
        )
        return None

    try:
        start = _to_utc(dtstart.dt)
        end = _to_utc(dtend.dt)
    except (AttributeError, ValueError) as e:
        logger.warning("Skipping VEVENT with invalid dates: %s", e)
        return None

    if end < start:
        logger.warning("Skipping VEVENT ending before it starts (%s > %s)", start, end)
        return None

    all_day = not isinstance(dtend.dt, datetime)
    # DTEND of an all-day entry is exclusive: the guest leaves the day before
    checkout = end.date() - timedelta(days=1) if all_day else end.date()
    checkout = max(checkout, start.date())

    uid = str(component.get("UID") or "").strip() or uuid.uuid4().hex
    title = str(component.get("SUMMARY") or "").strip() or DEFAULT_TITLE
    status = str(component.get("STATUS") or "").strip().lower() or DEFAULT_STATUS

    return CalendarEvent(
        start=start, end=end, checkout=checkout, title=title, uid=uid, status=status
    )


def _events_from(components: list[Any]) -> list[CalendarEvent]:
    events: list[CalendarEvent] = []
    for component in components:
        try:
            event = event_from_component(component)
        except (TypeError, ValueError) as e:
            logger.warning("Skipping unparseable VEVENT: %s", e)
            continue
        if event is not None:
            events.append(event)
    return events


def parse_feed(text: str) -> list[CalendarEvent]:
    """Parse an iCalendar document into events sorted by start.

    Raises:
        FetchError: INVALID_FEED if the text holds no calendar data at all.
    """
    upper = text.upper()
    if "BEGIN:VCALENDAR" not in upper and "BEGIN:VEVENT" not in upper:
        raise FetchError(FetchErrorKind.INVALID_FEED, "no calendar data in response")

    try:
        calendar = Calendar.from_ical(text)
        events = _events_from(calendar.walk("VEVENT"))
    except ValueError as e:
        blocks = VEVENT_BLOCK.findall(text)
        if not blocks:
            raise FetchError(FetchErrorKind.INVALID_FEED, f"unparseable calendar: {e}") from e

        logger.warning(
            "Calendar failed to parse as a whole (%s); salvaging %d VEVENT blocks",
            e,
            len(blocks),
        )
        components = []
        for block in blocks:
            try:
                components.append(Event.from_ical(block))
            except ValueError as block_error:
                logger.warning("Skipping unparseable VEVENT block: %s", block_error)
        events = _events_from(components)

    events.sort(key=lambda event: event.start)
    return events


class CalendarFeedFetcher:
    """Fetches iCalendar feeds over HTTP with timeouts and classified errors."""

    def __init__(
        self,
        settings: SyncSettings,
        audit: SyncAuditLog | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._settings = settings
        self._audit = audit
        self._client = client or httpx.Client()
        self._headers = {
            "User-Agent": settings.calendar_user_agent,
            "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.5",
        }

    def close(self) -> None:
        self._client.close()

    def fetch(self, feed_url: str) -> list[CalendarEvent]:
        """Fetch and parse a feed; every attempt is written to the audit log.

        Raises:
            FetchError: Classified failure (invalid URL, timeout, 404, ...).
        """
        try:
            events = self._fetch(feed_url)
        except FetchError as e:
            self._record(feed_url, error=e)
            raise
        self._record(feed_url, count=len(events))
        return events

    def _fetch(self, feed_url: str) -> list[CalendarEvent]:
        url = validate_feed_url(feed_url)

        if self._settings.calendar_probe_urls:
            self._probe(url)

        try:
            response = self._client.get(
                url,
                headers=self._headers,
                timeout=self._settings.calendar_fetch_timeout_seconds,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            raise FetchError(classify_exception(e), str(e) or type(e).__name__, url) from e

        if response.status_code >= 400:
            raise FetchError(
                classify_status(response.status_code),
                f"HTTP {response.status_code}",
                url,
            )

        try:
            return parse_feed(response.text)
        except FetchError as e:
            raise FetchError(e.kind, (e.details or {}).get("reason"), url) from e

    def _probe(self, url: str) -> None:
        """HEAD request to fail fast on dead hosts and missing feeds."""
        try:
            response = self._client.head(
                url,
                headers=self._headers,
                timeout=self._settings.calendar_probe_timeout_seconds,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            raise FetchError(classify_exception(e), str(e) or type(e).__name__, url) from e

        if response.status_code >= 400 and response.status_code not in PROBE_IGNORED_STATUSES:
            raise FetchError(
                classify_status(response.status_code),
                f"HTTP {response.status_code} on probe",
                url,
            )

    def _record(
        self,
        feed_url: str,
        count: int = 0,
        error: FetchError | None = None,
    ) -> None:
        log_sync_operation(
            logger,
            "calendar_fetch",
            feed_url=feed_url,
            count=count,
            error=error.describe() if error else None,
        )
        if self._audit is None:
            return
        self._audit.append(
            SyncLogEntry(
                sync_type=SyncType.CALENDAR_FETCH,
                status=SyncStatus.ERROR if error else SyncStatus.SUCCESS,
                action=SyncAction.FETCH,
                entity_id=feed_url,
                events_count=count,
                error_message=error.describe() if error else None,
                notes=error.kind.value if error else "",
            )
        )

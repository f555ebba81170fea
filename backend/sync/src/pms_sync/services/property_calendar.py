"""Calendar of a mirrored property, with the health of its feed."""

from pms_sync.models.calendar import CalendarError, CalendarEvent, PropertyCalendar
from pms_sync.models.enums import CalendarStatus
from pms_sync.models.errors import FetchError, NotFoundError, StorageError
from pms_sync.models.external import ExternalProperty
from pms_sync.services.calendar_cache import CalendarCache
from pms_sync.services.calendar_fetcher import validate_feed_url
from pms_sync.services.dynamodb import PROPERTIES_TABLE, STORAGE_EXCEPTIONS, DynamoDBService
from pms_sync.utils.logging import get_logger

logger = get_logger(__name__)


class PropertyCalendarService:
    """Resolves a property's feed URL and reads it through the cache.

    The status distinguishes "no feed configured", "feed healthy", "feed
    failing but older data shown" and "feed failing with nothing to show",
    so the UI can offer a retry in the last two cases.
    """

    def __init__(self, db: DynamoDBService, cache: CalendarCache) -> None:
        self._db = db
        self._cache = cache

    def _get_property(self, property_id: str) -> ExternalProperty:
        try:
            item = self._db.find_by_upstream_id(PROPERTIES_TABLE, property_id)
        except STORAGE_EXCEPTIONS as e:
            raise StorageError("get_property", str(e)) from e
        if item is None:
            raise NotFoundError("property", property_id)
        return ExternalProperty.from_item(item)

    def get_calendar(self, property_id: str) -> PropertyCalendar:
        """Events for a property from its configured feed.

        Raises:
            NotFoundError: If the property is not mirrored locally.
        """
        prop = self._get_property(property_id)
        return self._read(prop, refresh=False)

    def get_calendar_events(self, property_id: str) -> list[CalendarEvent]:
        """Events only, for callers that do not show feed health.

        Returns an empty list when no feed is configured.

        Raises:
            FetchError: If the feed failed and there is nothing cached.
            NotFoundError: If the property is not mirrored locally.
        """
        prop = self._get_property(property_id)
        if not prop.ical_url:
            return []
        return self._cache.get_events(prop.ical_url)

    def refresh_calendar(self, property_id: str) -> PropertyCalendar:
        """Manual retry: fetch now, bypassing the TTL and error backoff."""
        prop = self._get_property(property_id)
        return self._read(prop, refresh=True)

    def set_feed_url(self, property_id: str, feed_url: str | None) -> ExternalProperty:
        """Configure (or remove, with None/"") a property's calendar feed.

        Raises:
            FetchError: INVALID_URL for a non-http(s) URL.
            NotFoundError: If the property is not mirrored locally.
        """
        new_url = validate_feed_url(feed_url) if feed_url and feed_url.strip() else None
        prop = self._get_property(property_id)

        try:
            updated = self._db.set_property_ical_url(property_id, new_url)
        except STORAGE_EXCEPTIONS as e:
            raise StorageError("set_feed_url", str(e)) from e
        if updated is None:
            raise NotFoundError("property", property_id)

        for url in {prop.ical_url, new_url}:
            if url:
                self._cache.clear(url)

        logger.info(
            "Calendar feed for property %s changed (%s -> %s)",
            property_id,
            prop.ical_url or "none",
            new_url or "none",
        )
        return ExternalProperty.from_item(updated)

    def _read(self, prop: ExternalProperty, *, refresh: bool) -> PropertyCalendar:
        feed_url = prop.ical_url
        if not feed_url:
            return PropertyCalendar(
                property_id=prop.upstream_id, status=CalendarStatus.NOT_CONFIGURED
            )

        try:
            if refresh:
                events = self._cache.refresh(feed_url)
            else:
                events = self._cache.get_events(feed_url)
        except FetchError as e:
            entry = self._cache.peek(feed_url)
            return PropertyCalendar(
                property_id=prop.upstream_id,
                status=CalendarStatus.ERROR,
                feed_url=feed_url,
                error=CalendarError(
                    kind=e.kind,
                    message=e.user_message,
                    occurred_at=entry.last_error.occurred_at
                    if entry and entry.last_error
                    else None,
                ),
            )

        entry = self._cache.peek(feed_url)
        last_error = entry.last_error if entry else None
        return PropertyCalendar(
            property_id=prop.upstream_id,
            status=CalendarStatus.STALE if last_error else CalendarStatus.HEALTHY,
            feed_url=feed_url,
            events=events,
            fetched_at=entry.fetched_at if entry else None,
            error=CalendarError(
                kind=last_error.kind,
                message=last_error.message,
                occurred_at=last_error.occurred_at,
            )
            if last_error
            else None,
        )

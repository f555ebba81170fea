"""Unit tests for property calendar resolution and feed configuration."""

import httpx
import pytest

from pms_sync.models.enums import CalendarStatus, FetchErrorKind
from pms_sync.models.errors import FetchError, NotFoundError
from pms_sync.services.calendar_cache import CalendarCache
from pms_sync.services.calendar_fetcher import CalendarFeedFetcher
from pms_sync.services.dynamodb import PROPERTIES_TABLE
from pms_sync.services.property_calendar import PropertyCalendarService

FEED_URL = "https://calendar.example/p1.ics"


@pytest.fixture
def cache(settings, feed_server, clock) -> CalendarCache:
    fetcher = CalendarFeedFetcher(settings, client=feed_server.client())
    return CalendarCache(fetcher, clock=clock)


@pytest.fixture
def service(db, cache) -> PropertyCalendarService:
    db.upsert_by_upstream_id(PROPERTIES_TABLE, "P1", {"name": "Unit A"})
    return PropertyCalendarService(db, cache)


@pytest.fixture
def feed_text(make_vevent, make_ics) -> str:
    return make_ics(
        make_vevent("a@x", ";VALUE=DATE:20250701", ";VALUE=DATE:20250705", "Booked")
    )


class TestGetCalendar:
    def test_property_without_feed_is_not_configured(self, service, feed_server):
        calendar = service.get_calendar("P1")

        assert calendar.status == CalendarStatus.NOT_CONFIGURED
        assert calendar.events == []
        assert feed_server.requests == []

    def test_healthy_feed(self, service, feed_server, feed_text):
        feed_server.serve(FEED_URL, feed_text)
        service.set_feed_url("P1", FEED_URL)

        calendar = service.get_calendar("P1")

        assert calendar.status == CalendarStatus.HEALTHY
        assert calendar.feed_url == FEED_URL
        assert [e.uid for e in calendar.events] == ["a@x"]
        assert calendar.error is None
        assert calendar.fetched_at is not None

    def test_failing_feed_with_old_data_is_stale(self, service, feed_server, feed_text, clock):
        feed_server.serve(FEED_URL, feed_text)
        service.set_feed_url("P1", FEED_URL)
        service.get_calendar("P1")

        clock.advance(minutes=61)
        feed_server.fail(FEED_URL, httpx.ConnectError("refused"))
        calendar = service.get_calendar("P1")

        assert calendar.status == CalendarStatus.STALE
        assert len(calendar.events) == 1
        assert calendar.error.kind == FetchErrorKind.UNREACHABLE
        assert calendar.error.message

    def test_failing_feed_without_data_is_error(self, service, feed_server):
        feed_server.serve(FEED_URL, "denied", status_code=403)
        service.set_feed_url("P1", FEED_URL)

        calendar = service.get_calendar("P1")

        assert calendar.status == CalendarStatus.ERROR
        assert calendar.events == []
        assert calendar.error.kind == FetchErrorKind.UNAUTHORIZED
        assert calendar.error.occurred_at is not None

    def test_unknown_property_raises(self, service):
        with pytest.raises(NotFoundError):
            service.get_calendar("nope")


class TestGetCalendarEvents:
    def test_no_feed_gives_no_events(self, service):
        assert service.get_calendar_events("P1") == []

    def test_returns_feed_events(self, service, feed_server, feed_text):
        feed_server.serve(FEED_URL, feed_text)
        service.set_feed_url("P1", FEED_URL)

        assert [e.title for e in service.get_calendar_events("P1")] == ["Booked"]

    def test_hard_error_is_raised(self, service, feed_server):
        feed_server.serve(FEED_URL, "down", status_code=500)
        service.set_feed_url("P1", FEED_URL)

        with pytest.raises(FetchError) as exc_info:
            service.get_calendar_events("P1")

        assert exc_info.value.kind == FetchErrorKind.SERVER_ERROR


class TestRefreshCalendar:
    def test_refresh_recovers_from_cached_error(self, service, feed_server, feed_text):
        feed_server.serve(FEED_URL, "broken", status_code=500)
        service.set_feed_url("P1", FEED_URL)
        assert service.get_calendar("P1").status == CalendarStatus.ERROR

        feed_server.serve(FEED_URL, feed_text)
        calendar = service.refresh_calendar("P1")

        assert calendar.status == CalendarStatus.HEALTHY
        assert feed_server.get_count(FEED_URL) == 2


class TestSetFeedUrl:
    def test_stores_url_on_property(self, service, table_items):
        prop = service.set_feed_url("P1", f" {FEED_URL} ")

        assert prop.ical_url == FEED_URL
        assert table_items(PROPERTIES_TABLE)[0]["ical_url"] == FEED_URL

    def test_rejects_invalid_url(self, service, table_items):
        with pytest.raises(FetchError) as exc_info:
            service.set_feed_url("P1", "not a url")

        assert exc_info.value.kind == FetchErrorKind.INVALID_URL
        assert "ical_url" not in table_items(PROPERTIES_TABLE)[0]

    def test_empty_value_removes_feed(self, service):
        service.set_feed_url("P1", FEED_URL)

        prop = service.set_feed_url("P1", "")

        assert prop.ical_url is None
        assert service.get_calendar("P1").status == CalendarStatus.NOT_CONFIGURED

    def test_changing_url_drops_cached_data(self, service, cache, feed_server, feed_text):
        feed_server.serve(FEED_URL, feed_text)
        service.set_feed_url("P1", FEED_URL)
        service.get_calendar("P1")
        assert cache.peek(FEED_URL) is not None

        service.set_feed_url("P1", "https://calendar.example/new.ics")

        assert cache.peek(FEED_URL) is None

    def test_unknown_property_raises(self, service):
        with pytest.raises(NotFoundError):
            service.set_feed_url("nope", FEED_URL)

    def test_webhook_update_keeps_configured_feed(self, service, reconciler):
        service.set_feed_url("P1", FEED_URL)

        reconciler.reconcile("property", "updated", "P1", {"id": "P1", "title": "Renamed"})

        assert service.get_calendar("P1").feed_url == FEED_URL

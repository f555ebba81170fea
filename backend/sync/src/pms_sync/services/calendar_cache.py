"""Process-wide cache in front of the calendar feed fetcher.

Per feed URL:
- fresh data (younger than the TTL) is served without a network call
- an expired entry triggers a fetch; on failure old data is served and the
  error recorded, and with no old data the error is cached and raised
- after a failure no fetch is attempted until the error TTL elapses
- concurrent misses for one URL share a single fetch

The cache is local to the process; each instance of the API keeps its own.
"""

import threading
from collections import OrderedDict
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from pms_sync.models.calendar import CacheEntry, CachedError, CalendarEvent
from pms_sync.models.enums import FetchErrorKind
from pms_sync.models.errors import FetchError
from pms_sync.services.calendar_fetcher import CalendarFeedFetcher
from pms_sync.utils.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CalendarCache:
    """Time-bounded, stale-on-error, single-flight cache of calendar feeds."""

    def __init__(
        self,
        fetcher: CalendarFeedFetcher,
        ttl: timedelta = timedelta(minutes=60),
        error_ttl: timedelta = timedelta(minutes=10),
        max_entries: int = 256,
        clock: Clock = utc_now,
    ) -> None:
        self._fetcher = fetcher
        self._ttl = ttl
        self._error_ttl = error_ttl
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._inflight: dict[str, Future[list[CalendarEvent]]] = {}
        self._lock = threading.Lock()

    def get_events(self, feed_url: str) -> list[CalendarEvent]:
        """Events for a feed, from cache when possible.

        Raises:
            FetchError: Only when there is no usable data, fresh or stale.
        """
        return self._get(feed_url, force=False)

    def refresh(self, feed_url: str) -> list[CalendarEvent]:
        """Fetch now, ignoring the TTL and any error backoff.

        Stale data is still served if the fetch fails.
        """
        return self._get(feed_url, force=True)

    def peek(self, feed_url: str) -> CacheEntry | None:
        """Snapshot of the cache entry without fetching."""
        with self._lock:
            entry = self._entries.get(feed_url)
            return replace(entry) if entry else None

    def clear(self, feed_url: str) -> None:
        with self._lock:
            self._entries.pop(feed_url, None)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _get(self, feed_url: str, *, force: bool) -> list[CalendarEvent]:
        with self._lock:
            entry = self._entries.get(feed_url)
            if entry is not None:
                self._entries.move_to_end(feed_url)
                if not force:
                    cached = self._serve_cached(feed_url, entry)
                    if cached is not None:
                        return cached

            future = self._inflight.get(feed_url)
            owner = future is None
            if future is None:
                future = Future()
                self._inflight[feed_url] = future

        if not owner:
            logger.debug("Joining in-flight fetch of %s", feed_url)
            return future.result()

        try:
            events = self._fetch(feed_url)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(events)
            return events
        finally:
            with self._lock:
                self._inflight.pop(feed_url, None)

    def _serve_cached(self, feed_url: str, entry: CacheEntry) -> list[CalendarEvent] | None:
        """Events to serve without fetching, or None if a fetch is due.

        Called with the lock held. Raises the cached error during backoff
        when there is no data to fall back on.
        """
        now = self._clock()

        if entry.has_data and entry.fetched_at and now - entry.fetched_at < self._ttl:
            return list(entry.events or [])

        if entry.last_error and now - entry.last_error.occurred_at < self._error_ttl:
            if entry.has_data:
                logger.info("Serving stale calendar for %s (error backoff)", feed_url)
                return list(entry.events or [])
            raise self._cached_error(feed_url, entry)

        return None

    def _fetch(self, feed_url: str) -> list[CalendarEvent]:
        try:
            events = self._fetcher.fetch(feed_url)
        except FetchError as e:
            return self._record_failure(feed_url, e)

        with self._lock:
            self._store(
                feed_url, CacheEntry(events=list(events), fetched_at=self._clock())
            )
        return list(events)

    def _record_failure(self, feed_url: str, error: FetchError) -> list[CalendarEvent]:
        now = self._clock()
        with self._lock:
            previous = self._entries.get(feed_url)
            entry = CacheEntry(
                events=previous.events if previous else None,
                fetched_at=previous.fetched_at if previous else None,
                last_error=CachedError(
                    message=error.user_message, kind=error.kind, occurred_at=now
                ),
                error=error,
            )
            self._store(feed_url, entry)

        if entry.has_data:
            logger.warning(
                "Calendar fetch failed for %s, serving data from %s: %s",
                feed_url,
                entry.fetched_at.isoformat() if entry.fetched_at else "unknown",
                error.describe(),
            )
            return list(entry.events or [])
        raise error

    def _store(self, feed_url: str, entry: CacheEntry) -> None:
        self._entries[feed_url] = entry
        self._entries.move_to_end(feed_url)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted calendar cache entry %s", evicted)

    @staticmethod
    def _cached_error(feed_url: str, entry: CacheEntry) -> FetchError:
        if entry.error is not None:
            reason = entry.error.details.get("reason") if entry.error.details else None
            return FetchError(entry.error.kind, reason, feed_url)
        last = entry.last_error
        return FetchError(last.kind, last.message, feed_url) if last else FetchError(
            FetchErrorKind.UNKNOWN, None, feed_url
        )

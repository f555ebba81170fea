"""Property calendar endpoints.

Calendar reads go through the process-wide feed cache. Handlers are plain
functions so FastAPI runs the blocking fetches in its threadpool.
"""

from fastapi import APIRouter, Depends

from pms_sync.models.calendar import PropertyCalendar
from pms_sync.models.errors import ErrorResponse
from pms_sync.services.property_calendar import PropertyCalendarService
from pms_sync_api.dependencies import get_property_calendar_service
from pms_sync_api.models.responses import CalendarFeedResponse, CalendarFeedUpdate

router = APIRouter(tags=["calendar"])


@router.get(
    "/properties/{property_id}/calendar",
    summary="Get a property's calendar",
    description="""
Bookings from the property's iCalendar feed.

`status` is one of:
- `not_configured`: no feed URL set for the property
- `healthy`: events are current
- `stale`: the last refresh failed; older events are shown with the error
- `error`: the feed failed and there is nothing to show
""",
    response_model=PropertyCalendar,
    responses={404: {"description": "Unknown property", "model": ErrorResponse}},
)
def get_property_calendar(
    property_id: str,
    service: PropertyCalendarService = Depends(get_property_calendar_service),
) -> PropertyCalendar:
    return service.get_calendar(property_id)


@router.post(
    "/properties/{property_id}/calendar/refresh",
    summary="Retry a property's calendar feed now",
    response_model=PropertyCalendar,
    responses={404: {"description": "Unknown property", "model": ErrorResponse}},
)
def refresh_property_calendar(
    property_id: str,
    service: PropertyCalendarService = Depends(get_property_calendar_service),
) -> PropertyCalendar:
    return service.refresh_calendar(property_id)


@router.put(
    "/properties/{property_id}/calendar-feed",
    summary="Set or remove a property's calendar feed URL",
    response_model=CalendarFeedResponse,
    responses={
        400: {"description": "Not an http(s) URL", "model": ErrorResponse},
        404: {"description": "Unknown property", "model": ErrorResponse},
    },
)
def set_property_calendar_feed(
    property_id: str,
    update: CalendarFeedUpdate,
    service: PropertyCalendarService = Depends(get_property_calendar_service),
) -> CalendarFeedResponse:
    prop = service.set_feed_url(property_id, update.ical_url)
    return CalendarFeedResponse(property_id=prop.upstream_id, ical_url=prop.ical_url)

"""Pytest configuration and fixtures for the PMS sync backend tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto
- Wired sync services on top of the mocked tables
- Sample webhook payloads and iCalendar feeds
- httpx clients backed by MockTransport for calendar fetches
"""

import json
import os
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, Generator

import boto3
import httpx
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-pms-sync")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("PMS_WEBHOOK_SECRET", "whsec_test_pms_secret")

# Only set fake credentials for moto if no real credentials are present
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from pms_sync.config import SyncSettings  # noqa: E402
from pms_sync.services.dynamodb import (  # noqa: E402
    TABLE_KEYS,
    DynamoDBService,
    table_definition,
)
from pms_sync.services.reconciler import EntityReconciler  # noqa: E402
from pms_sync.services.sync_audit import SyncAuditLog  # noqa: E402
from pms_sync.services.webhook_intake import WebhookIntakeLog  # noqa: E402
from pms_sync.services.webhook_processor import WebhookProcessor  # noqa: E402
from pms_sync_api.dependencies import reset_services  # noqa: E402

TEST_WEBHOOK_SECRET = os.environ["PMS_WEBHOOK_SECRET"]
TABLE_PREFIX = os.environ["DYNAMODB_TABLE_PREFIX"]


# === Singleton Reset ===


@pytest.fixture(autouse=True)
def reset_service_singletons() -> Generator[None, None, None]:
    """Reset cached services before and after each test.

    Tests using mock_aws get fresh service instances inside the mock
    context rather than reusing one from a previous test.
    """
    reset_services()
    yield
    reset_services()


# === DynamoDB Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def dynamodb_client(aws_credentials: None) -> Generator[Any, None, None]:
    """Create a mocked DynamoDB client."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        yield client


@pytest.fixture
def create_tables(dynamodb_client: Any) -> None:
    """Create the sync tables in the mocked account."""
    for table in TABLE_KEYS:
        dynamodb_client.create_table(
            TableName=f"{TABLE_PREFIX}-{table}", **table_definition(table)
        )


@pytest.fixture
def db(create_tables: None) -> DynamoDBService:
    """DynamoDBService bound to the mocked tables."""
    return DynamoDBService(environment="test")


@pytest.fixture
def table_items(db: DynamoDBService) -> Callable[[str], list[dict[str, Any]]]:
    """Read every item of a table (name without prefix)."""
    resource = boto3.resource("dynamodb", region_name="eu-west-1")

    def _items(table: str) -> list[dict[str, Any]]:
        return resource.Table(db.table_name(table)).scan()["Items"]

    return _items


# === Service Fixtures ===


@pytest.fixture
def audit(db: DynamoDBService) -> SyncAuditLog:
    return SyncAuditLog(db)


@pytest.fixture
def intake(db: DynamoDBService) -> WebhookIntakeLog:
    return WebhookIntakeLog(db)


@pytest.fixture
def reconciler(db: DynamoDBService, audit: SyncAuditLog) -> EntityReconciler:
    return EntityReconciler(db, audit)


@pytest.fixture
def processor(intake: WebhookIntakeLog, reconciler: EntityReconciler) -> WebhookProcessor:
    return WebhookProcessor(intake, reconciler)


@pytest.fixture
def settings() -> SyncSettings:
    """Settings with the HEAD probe disabled so request counts stay simple."""
    return SyncSettings(
        environment="test",
        webhook_secret=TEST_WEBHOOK_SECRET,
        calendar_probe_urls=False,
        calendar_fetch_timeout_seconds=2.0,
    )


# === Sample Data Fixtures ===


@pytest.fixture
def sample_property_payload() -> dict[str, Any]:
    """Property (listing) data as sent by the PMS."""
    return {
        "_id": "P1",
        "nickname": "Unit A",
        "title": "Sunny apartment near the beach",
        "address": {
            "full": "Calle Mayor 12, 03170 Ciudad Quesada",
            "city": "Ciudad Quesada",
            "state": "Alicante",
            "zipcode": "03170",
            "country": "Spain",
            "location": {"lat": 38.0612, "lng": -0.7338},
        },
        "bedrooms": 2,
        "bathrooms": 1.5,
        "beds": 3,
        "accommodates": 4,
        "amenities": ["wifi", "pool", "air_conditioning"],
        "propertyType": "apartment",
        "roomType": "Entire home/apt",
        "listingUrl": "https://pms.example/listings/P1",
        "picture": {"thumbnail": "https://img.example/p1/main-thumb.jpg"},
        "images": [
            {
                "thumbnail": "https://img.example/p1/1-thumb.jpg",
                "original": "https://img.example/p1/1.jpg",
            },
            {"regular": "https://img.example/p1/2.jpg"},
        ],
    }


@pytest.fixture
def sample_reservation_payload() -> dict[str, Any]:
    """Reservation data as sent by the PMS."""
    return {
        "_id": "R100",
        "confirmationCode": "HMABC123",
        "status": "Confirmed",
        "source": "airbnb",
        "checkIn": "2025-07-15T15:00:00Z",
        "checkOut": "2025-07-22T10:00:00Z",
        "guest": {
            "_id": "G42",
            "fullName": "Ana García",
            "email": "ana@example.com",
            "phone": "+34612345678",
        },
        "listing": {"_id": "P1"},
        "money": {"total": 890.5, "currency": "eur"},
        "guests": {"total": 3, "adults": 2, "children": 1, "infants": 0, "pets": 1},
    }


def webhook_body(event: str, data: dict[str, Any]) -> bytes:
    """Serialize a webhook envelope the way the PMS sends it."""
    return json.dumps({"event": event, "data": data}).encode("utf-8")


@pytest.fixture
def make_webhook_body() -> Callable[[str, dict[str, Any]], bytes]:
    return webhook_body


# === Calendar Fixtures ===


def vevent(
    uid: str | None,
    start: str | None,
    end: str | None,
    summary: str | None = None,
    status: str | None = None,
) -> str:
    """Build one VEVENT block; None leaves the property out."""
    lines = ["BEGIN:VEVENT"]
    if uid is not None:
        lines.append(f"UID:{uid}")
    if start is not None:
        lines.append(f"DTSTART{start}")
    if end is not None:
        lines.append(f"DTEND{end}")
    if summary is not None:
        lines.append(f"SUMMARY:{summary}")
    if status is not None:
        lines.append(f"STATUS:{status}")
    lines.append("END:VEVENT")
    return "\r\n".join(lines)


def ics_document(*events: str, terminated: bool = True) -> str:
    """Wrap VEVENT blocks in a VCALENDAR."""
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Channel Manager//Export//EN",
        *events,
    ]
    if terminated:
        lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


@pytest.fixture
def make_vevent() -> Callable[..., str]:
    return vevent


@pytest.fixture
def make_ics() -> Callable[..., str]:
    return ics_document


class FeedServer:
    """Scripted HTTP responses for calendar feed URLs, counting requests."""

    def __init__(self) -> None:
        self.routes: dict[str, Any] = {}
        self.requests: list[httpx.Request] = []

    def serve(self, url: str, body: str = "", status_code: int = 200) -> None:
        self.routes[url] = httpx.Response(
            status_code, text=body, headers={"Content-Type": "text/calendar"}
        )

    def fail(self, url: str, exc: Exception) -> None:
        self.routes[url] = exc

    def get_count(self, url: str) -> int:
        return sum(1 for r in self.requests if r.method == "GET" and str(r.url) == url)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        return httpx.Response(
            route.status_code, content=route.content, headers=route.headers
        )

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def feed_server() -> FeedServer:
    return FeedServer()


class FakeClock:
    """Controllable UTC clock for cache time travel."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 7, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()

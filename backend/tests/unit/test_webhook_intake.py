"""Unit tests for the webhook intake log."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from pms_sync.models.errors import NotFoundError, StorageError
from pms_sync.services.dynamodb import WEBHOOK_EVENTS_TABLE, DynamoDBService
from pms_sync.services.webhook_intake import MAX_PAYLOAD_TEXT_BYTES, WebhookIntakeLog


def _record(intake: WebhookIntakeLog, entity_id: str = "P1") -> str:
    return intake.record(
        event_type="updated",
        entity_type="property",
        entity_id=entity_id,
        payload={"event": "property.updated", "data": {"id": entity_id, "rating": Decimal("4.5")}},
        signature="sha256=abc",
        source_address="203.0.113.7",
    )


class TestRecord:
    def test_record_stores_unprocessed_event(self, intake: WebhookIntakeLog, table_items):
        event_id = _record(intake)

        [item] = table_items(WEBHOOK_EVENTS_TABLE)
        assert item["event_id"] == event_id
        assert item["processed"] is False
        assert item["entity_id"] == "P1"
        assert item["source_address"] == "203.0.113.7"
        assert item["payload"]["data"]["rating"] == Decimal("4.5")

    def test_each_delivery_gets_its_own_record(self, intake: WebhookIntakeLog, table_items):
        first = _record(intake)
        second = _record(intake)

        assert first != second
        assert len(table_items(WEBHOOK_EVENTS_TABLE)) == 2

    def test_storage_failure_raises_storage_error(self):
        db = MagicMock(spec=DynamoDBService)
        db.put_time_ordered.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "no table"}},
            "PutItem",
        )

        with pytest.raises(StorageError) as exc_info:
            _record(WebhookIntakeLog(db))

        assert exc_info.value.retryable


class TestMarkProcessed:
    def test_success_sets_processed(self, intake: WebhookIntakeLog):
        event_id = _record(intake)

        intake.mark_processed(event_id)

        event = intake.get(event_id)
        assert event.processed
        assert event.processed_at is not None
        assert event.processing_error is None

    def test_failure_records_error(self, intake: WebhookIntakeLog):
        event_id = _record(intake)

        intake.mark_processed(event_id, "checkIn is required")

        event = intake.get(event_id)
        assert event.processed
        assert event.processing_error == "checkIn is required"

    def test_successful_replay_clears_previous_error(self, intake: WebhookIntakeLog):
        event_id = _record(intake)
        intake.mark_processed(event_id, "checkIn is required")

        intake.mark_processed(event_id)

        assert intake.get(event_id).processing_error is None

    def test_unknown_event_is_not_created(self, intake: WebhookIntakeLog, table_items):
        intake.mark_processed("whe_missing")

        assert table_items(WEBHOOK_EVENTS_TABLE) == []


class TestQueries:
    def test_get_unknown_event_raises_not_found(self, intake: WebhookIntakeLog):
        with pytest.raises(NotFoundError):
            intake.get("whe_missing")

    def test_list_recent_newest_first(self, intake: WebhookIntakeLog):
        ids = [_record(intake, entity_id=f"P{i}") for i in range(3)]

        events = intake.list_recent(limit=2)

        assert len(events) == 2
        assert events[0].received_at >= events[1].received_at
        assert {e.event_id for e in events} <= set(ids)

    def test_list_recent_reads_the_time_index(self):
        db = MagicMock(spec=DynamoDBService)
        db.recent.return_value = []

        WebhookIntakeLog(db).list_recent(limit=20)

        db.recent.assert_called_once_with(WEBHOOK_EVENTS_TABLE, 20)

    def test_list_recent_includes_events_stored_as_text(self, intake: WebhookIntakeLog):
        event_id = intake.record("unknown", "unknown", "", {}, payload_text="{not json")

        [event] = intake.list_recent()

        assert event.event_id == event_id
        assert event.payload_text == "{not json"


class TestUnstorablePayloads:
    """Bodies DynamoDB cannot hold as a map are recorded as text."""

    def test_number_beyond_precision_is_stored_as_text(
        self, intake: WebhookIntakeLog, table_items
    ):
        big = 10**40 + 1
        payload = {"event": "property.updated", "data": {"id": "P1", "beds": big}}

        event_id = intake.record("updated", "property", "P1", payload)

        [item] = table_items(WEBHOOK_EVENTS_TABLE)
        assert item["event_id"] == event_id
        assert item["payload"] == {}
        assert str(big) in item["payload_text"]
        assert item["entity_id"] == "P1"

    def test_storage_validation_exception_falls_back_to_text(self):
        db = MagicMock(spec=DynamoDBService)
        db.put_time_ordered.side_effect = [
            ClientError(
                {"Error": {"Code": "ValidationException", "Message": "Item size has exceeded"}},
                "PutItem",
            ),
            True,
        ]

        _record(WebhookIntakeLog(db))

        fallback = db.put_time_ordered.call_args_list[1].args[1]
        assert fallback["payload"] == {}
        assert '"rating": "4.5"' in fallback["payload_text"]

    def test_long_text_is_truncated(self, intake: WebhookIntakeLog):
        event_id = intake.record(
            "unknown", "unknown", "", {}, payload_text="x" * (MAX_PAYLOAD_TEXT_BYTES + 10)
        )

        assert len(intake.get(event_id).payload_text) == MAX_PAYLOAD_TEXT_BYTES

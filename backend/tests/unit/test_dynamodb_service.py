"""Unit tests for the DynamoDB wrapper used by the sync services."""

from decimal import Decimal

import pytest
from botocore.exceptions import ClientError

from pms_sync.services.dynamodb import (
    PROPERTIES_TABLE,
    RECENT_INDEX,
    SYNC_LOGS_TABLE,
    WEBHOOK_EVENTS_TABLE,
    DynamoDBService,
    get_dynamodb_service,
    is_validation_exception,
    reset_dynamodb_service,
    table_definition,
    to_dynamodb,
)


class TestToDynamodb:
    def test_converts_nested_floats(self):
        converted = to_dynamodb({"a": 1.5, "b": [2.25, {"c": 0.1}], "d": "x", "e": 3})

        assert converted == {
            "a": Decimal("1.5"),
            "b": [Decimal("2.25"), {"c": Decimal("0.1")}],
            "d": "x",
            "e": 3,
        }


class TestSingleton:
    def test_returns_shared_instance_until_reset(self):
        first = get_dynamodb_service("test")

        assert get_dynamodb_service() is first
        reset_dynamodb_service()
        assert get_dynamodb_service() is not first


class TestTableNames:
    def test_uses_prefix_from_environment(self, db: DynamoDBService):
        assert db.table_name(PROPERTIES_TABLE) == "test-pms-sync-external-properties"

    def test_defaults_prefix_from_environment_name(self, monkeypatch):
        monkeypatch.delenv("DYNAMODB_TABLE_PREFIX")

        assert DynamoDBService("prod").table_name("sync-logs") == "pms-sync-prod-sync-logs"


class TestUpsert:
    def test_reports_create_then_update(self, db: DynamoDBService):
        assert db.upsert_by_upstream_id(PROPERTIES_TABLE, "P1", {"name": "A"}) is True
        assert db.upsert_by_upstream_id(PROPERTIES_TABLE, "P1", {"name": "B"}) is False

        item = db.find_by_upstream_id(PROPERTIES_TABLE, "P1")
        assert item["name"] == "B"

    def test_created_at_is_kept_on_update(self, db: DynamoDBService):
        db.upsert_by_upstream_id(PROPERTIES_TABLE, "P1", {"name": "A"})
        created_at = db.find_by_upstream_id(PROPERTIES_TABLE, "P1")["created_at"]

        db.upsert_by_upstream_id(PROPERTIES_TABLE, "P1", {"name": "B"})

        item = db.find_by_upstream_id(PROPERTIES_TABLE, "P1")
        assert item["created_at"] == created_at
        assert item["updated_at"] >= created_at

    def test_reserved_words_are_allowed_as_fields(self, db: DynamoDBService):
        db.upsert_by_upstream_id(
            PROPERTIES_TABLE, "P1", {"name": "A", "status": "active", "bathrooms": 1.5}
        )

        item = db.find_by_upstream_id(PROPERTIES_TABLE, "P1")
        assert item["status"] == "active"
        assert item["bathrooms"] == Decimal("1.5")

    def test_keeps_attributes_not_in_payload(self, db: DynamoDBService):
        db.upsert_by_upstream_id(PROPERTIES_TABLE, "P1", {"name": "A"})
        db.set_property_ical_url("P1", "https://calendar.example/p1.ics")

        db.upsert_by_upstream_id(PROPERTIES_TABLE, "P1", {"name": "B"})

        item = db.find_by_upstream_id(PROPERTIES_TABLE, "P1")
        assert item["ical_url"] == "https://calendar.example/p1.ics"


class TestDelete:
    def test_returns_removed_item(self, db: DynamoDBService):
        db.upsert_by_upstream_id(PROPERTIES_TABLE, "P1", {"name": "A"})

        removed = db.delete_by_upstream_id(PROPERTIES_TABLE, "P1")

        assert removed["name"] == "A"
        assert db.find_by_upstream_id(PROPERTIES_TABLE, "P1") is None

    def test_absent_item_returns_none(self, db: DynamoDBService):
        assert db.delete_by_upstream_id(PROPERTIES_TABLE, "missing") is None


class TestConditionalWrites:
    def test_put_item_condition_failure_returns_false(self, db: DynamoDBService):
        item = {"log_id": "L1", "notes": "first"}
        assert db.put_item(SYNC_LOGS_TABLE, item, "attribute_not_exists(log_id)") is True
        assert db.put_item(SYNC_LOGS_TABLE, item, "attribute_not_exists(log_id)") is False

    def test_set_ical_url_on_missing_property_returns_none(self, db: DynamoDBService):
        assert db.set_property_ical_url("missing", "https://calendar.example/x.ics") is None
        assert db.find_by_upstream_id(PROPERTIES_TABLE, "missing") is None

    def test_clearing_ical_url_removes_attribute(self, db: DynamoDBService):
        db.upsert_by_upstream_id(PROPERTIES_TABLE, "P1", {"name": "A"})
        db.set_property_ical_url("P1", "https://calendar.example/p1.ics")

        updated = db.set_property_ical_url("P1", None)

        assert "ical_url" not in updated


class TestRecent:
    """Newest-first listing of the append-only tables via their time index."""

    def test_returns_newest_first_up_to_limit(self, db: DynamoDBService):
        for day in range(1, 6):
            item = {"log_id": f"L{day}", "timestamp": f"2025-07-0{day}T00:00:00+00:00"}
            db.put_time_ordered(SYNC_LOGS_TABLE, item)

        items = db.recent(SYNC_LOGS_TABLE, limit=3)

        assert [item["log_id"] for item in items] == ["L5", "L4", "L3"]

    def test_items_written_without_stream_are_not_listed(self, db: DynamoDBService):
        db.put_item(SYNC_LOGS_TABLE, {"log_id": "L1", "timestamp": "2025-07-01T00:00:00+00:00"})

        assert db.recent(SYNC_LOGS_TABLE, limit=10) == []

    def test_missing_table_raises_client_error(self, dynamodb_client):
        service = DynamoDBService("test")

        with pytest.raises(ClientError):
            service.recent(SYNC_LOGS_TABLE, limit=10)


class TestTableDefinition:
    def test_append_only_tables_get_time_index(self):
        definition = table_definition(WEBHOOK_EVENTS_TABLE)

        [index] = definition["GlobalSecondaryIndexes"]
        assert index["IndexName"] == RECENT_INDEX
        assert [k["AttributeName"] for k in index["KeySchema"]] == ["stream", "received_at"]

    def test_mirror_tables_have_no_index(self):
        assert "GlobalSecondaryIndexes" not in table_definition(PROPERTIES_TABLE)


class TestIsValidationException:
    def test_matches_only_validation_exception(self):
        rejected = ClientError({"Error": {"Code": "ValidationException"}}, "PutItem")
        throttled = ClientError(
            {"Error": {"Code": "ProvisionedThroughputExceededException"}}, "PutItem"
        )

        assert is_validation_exception(rejected)
        assert not is_validation_exception(throttled)
        assert not is_validation_exception(ValueError("x"))

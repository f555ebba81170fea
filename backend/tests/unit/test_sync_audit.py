"""Unit tests for the sync audit log."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from pms_sync.models.enums import SyncAction, SyncStatus, SyncType
from pms_sync.models.errors import StorageError
from pms_sync.models.sync_log import SyncLogEntry
from pms_sync.services.dynamodb import SYNC_LOGS_TABLE, DynamoDBService
from pms_sync.services.sync_audit import SyncAuditLog


def _entry(**overrides) -> SyncLogEntry:
    values = {
        "sync_type": SyncType.WEBHOOK_PROPERTY,
        "status": SyncStatus.SUCCESS,
        "action": SyncAction.CREATE,
        "entity_id": "P1",
        "properties_count": 1,
    }
    values.update(overrides)
    return SyncLogEntry(**values)


class TestSyncAuditLog:
    def test_append_stores_entry(self, audit: SyncAuditLog, table_items):
        assert audit.append(_entry())

        [item] = table_items(SYNC_LOGS_TABLE)
        assert item["sync_type"] == "webhook_property"
        assert item["status"] == "success"
        assert item["properties_count"] == 1
        assert "error_message" not in item

    def test_append_failure_is_swallowed_and_logged(self, caplog):
        db = MagicMock(spec=DynamoDBService)
        db.put_time_ordered.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}}, "PutItem"
        )

        stored = SyncAuditLog(db).append(
            _entry(status=SyncStatus.ERROR, error_message="bad payload")
        )

        assert stored is False
        assert "Failed to write sync log entry" in caplog.text
        assert "bad payload" in caplog.text

    def test_recent_returns_newest_first(self, audit: SyncAuditLog):
        audit.append(_entry(entity_id="P1", timestamp=datetime(2025, 7, 1, tzinfo=timezone.utc)))
        audit.append(_entry(entity_id="P2", timestamp=datetime(2025, 7, 2, tzinfo=timezone.utc)))

        entries = audit.recent()

        assert [e.entity_id for e in entries] == ["P2", "P1"]
        assert entries[0].sync_type == SyncType.WEBHOOK_PROPERTY

    def test_recent_reads_only_the_requested_page(self, audit: SyncAuditLog):
        for day in range(1, 6):
            audit.append(
                _entry(entity_id=f"P{day}", timestamp=datetime(2025, 7, day, tzinfo=timezone.utc))
            )

        entries = audit.recent(limit=2)

        assert [e.entity_id for e in entries] == ["P5", "P4"]

    def test_recent_queries_the_time_index(self):
        db = MagicMock(spec=DynamoDBService)
        db.recent.return_value = []

        SyncAuditLog(db).recent(limit=10)

        db.recent.assert_called_once_with(SYNC_LOGS_TABLE, 10)

    def test_recent_storage_failure_raises_storage_error(self):
        db = MagicMock(spec=DynamoDBService)
        db.recent.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}}, "Query"
        )

        with pytest.raises(StorageError):
            SyncAuditLog(db).recent()

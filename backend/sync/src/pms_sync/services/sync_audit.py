"""Append-only audit log of reconciliations and calendar fetches."""

from pms_sync.models.errors import StorageError
from pms_sync.models.sync_log import SyncLogEntry
from pms_sync.services.dynamodb import STORAGE_EXCEPTIONS, SYNC_LOGS_TABLE, DynamoDBService
from pms_sync.utils.logging import get_logger

logger = get_logger(__name__)


class SyncAuditLog:
    """Writes SyncLogEntry rows.

    A failed write never propagates: the audit log is not allowed to turn a
    successful sync into a failed one. The entry is written to the
    application log instead.
    """

    def __init__(self, db: DynamoDBService) -> None:
        self._db = db

    def append(self, entry: SyncLogEntry) -> bool:
        """Append an entry. Returns False if it could not be stored."""
        try:
            self._db.put_time_ordered(SYNC_LOGS_TABLE, entry.to_item())
            return True
        except Exception:
            logger.exception(
                "Failed to write sync log entry: type=%s status=%s entity=%s error=%s",
                entry.sync_type.value,
                entry.status.value,
                entry.entity_id,
                entry.error_message,
            )
            return False

    def recent(self, limit: int = 50) -> list[SyncLogEntry]:
        """Most recent entries first.

        Raises:
            StorageError: If storage is unavailable.
        """
        try:
            items = self._db.recent(SYNC_LOGS_TABLE, limit)
        except STORAGE_EXCEPTIONS as e:
            raise StorageError("list_sync_logs", str(e)) from e
        return [SyncLogEntry.from_item(item) for item in items]

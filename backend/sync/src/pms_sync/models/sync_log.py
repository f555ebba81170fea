"""Sync audit log entry model."""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from .enums import SyncAction, SyncStatus, SyncType


class SyncLogEntry(BaseModel):
    """One append-only record per reconciliation attempt or calendar fetch."""

    log_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    sync_type: SyncType
    status: SyncStatus
    action: SyncAction = Field(default=SyncAction.NONE)
    entity_id: str = Field(default="", description="Upstream id or feed URL")
    properties_count: int = Field(default=0, ge=0)
    reservations_count: int = Field(default=0, ge=0)
    events_count: int = Field(default=0, ge=0)
    error_message: str | None = Field(default=None)
    notes: str = Field(default="")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_item(self) -> dict[str, Any]:
        """Serialize for DynamoDB."""
        item: dict[str, Any] = {
            "log_id": self.log_id,
            "sync_type": self.sync_type.value,
            "status": self.status.value,
            "action": self.action.value,
            "entity_id": self.entity_id,
            "properties_count": self.properties_count,
            "reservations_count": self.reservations_count,
            "events_count": self.events_count,
            "notes": self.notes,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.error_message:
            item["error_message"] = self.error_message
        return item

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "SyncLogEntry":
        return cls(
            log_id=item["log_id"],
            sync_type=SyncType(item["sync_type"]),
            status=SyncStatus(item["status"]),
            action=SyncAction(item.get("action", SyncAction.NONE.value)),
            entity_id=item.get("entity_id", ""),
            properties_count=int(item.get("properties_count", 0)),
            reservations_count=int(item.get("reservations_count", 0)),
            events_count=int(item.get("events_count", 0)),
            error_message=item.get("error_message"),
            notes=item.get("notes", ""),
            timestamp=datetime.fromisoformat(item["timestamp"]),
        )

"""Maps webhook payloads onto the local mirror tables.

Create and update events are applied with a single atomic upsert keyed on
the upstream id, so replays and concurrent deliveries converge on one row
holding the last payload applied. Deletes of absent rows succeed.
"""

from typing import Any

from pydantic import BaseModel

from pms_sync.models.enums import (
    EntityType,
    SyncAction,
    SyncStatus,
    SyncType,
    WebhookEventType,
)
from pms_sync.models.errors import ErrorCode, StorageError, ValidationError
from pms_sync.models.external import ExternalProperty, ExternalReservation
from pms_sync.models.sync_log import SyncLogEntry
from pms_sync.models.webhook import is_supported
from pms_sync.services.dynamodb import (
    PROPERTIES_TABLE,
    RESERVATIONS_TABLE,
    SERIALIZATION_EXCEPTIONS,
    STORAGE_EXCEPTIONS,
    DynamoDBService,
    is_validation_exception,
)
from pms_sync.services.sync_audit import SyncAuditLog
from pms_sync.utils.logging import get_logger, log_sync_operation

logger = get_logger(__name__)

SYNC_TYPES: dict[str, SyncType] = {
    EntityType.PROPERTY.value: SyncType.WEBHOOK_PROPERTY,
    EntityType.RESERVATION.value: SyncType.WEBHOOK_RESERVATION,
}

INTENDED_ACTIONS: dict[str, SyncAction] = {
    WebhookEventType.CREATED.value: SyncAction.CREATE,
    WebhookEventType.UPDATED.value: SyncAction.UPDATE,
    WebhookEventType.DELETED.value: SyncAction.DELETE,
}

TABLES: dict[str, str] = {
    EntityType.PROPERTY.value: PROPERTIES_TABLE,
    EntityType.RESERVATION.value: RESERVATIONS_TABLE,
}


class ReconcileResult(BaseModel):
    """Outcome of one reconciliation attempt."""

    success: bool
    message: str
    action: SyncAction = SyncAction.NONE
    retryable: bool = False


class EntityReconciler:
    """Applies created/updated/deleted events to the mirror tables."""

    def __init__(self, db: DynamoDBService, audit: SyncAuditLog) -> None:
        self._db = db
        self._audit = audit

    def reconcile(
        self,
        entity_type: str,
        event_type: str,
        entity_id: str,
        payload: dict[str, Any],
    ) -> ReconcileResult:
        """Apply one webhook event. Never raises; always writes one audit entry."""
        sync_type = SYNC_TYPES.get(entity_type, SyncType.WEBHOOK_UNKNOWN)

        try:
            result = self._apply(entity_type, event_type, entity_id, payload)
        except ValidationError as e:
            result = ReconcileResult(
                success=False,
                message=e.describe(),
                action=INTENDED_ACTIONS.get(event_type, SyncAction.NONE),
            )
        except StorageError as e:
            result = ReconcileResult(
                success=False,
                message=e.describe(),
                action=INTENDED_ACTIONS.get(event_type, SyncAction.NONE),
                retryable=True,
            )

        self._audit.append(
            SyncLogEntry(
                sync_type=sync_type,
                status=SyncStatus.SUCCESS if result.success else SyncStatus.ERROR,
                action=result.action,
                entity_id=entity_id,
                properties_count=int(
                    result.success and entity_type == EntityType.PROPERTY.value
                ),
                reservations_count=int(
                    result.success and entity_type == EntityType.RESERVATION.value
                ),
                error_message=None if result.success else result.message,
                notes=f"{entity_type}.{event_type}",
            )
        )
        log_sync_operation(
            logger,
            f"reconcile_{result.action.value}",
            sync_type=sync_type.value,
            entity_id=entity_id or None,
            error=None if result.success else result.message,
            retryable=result.retryable,
        )
        return result

    def _apply(
        self,
        entity_type: str,
        event_type: str,
        entity_id: str,
        payload: dict[str, Any],
    ) -> ReconcileResult:
        if not entity_type:
            raise ValidationError(
                "entity type is required", code=ErrorCode.UNSUPPORTED_EVENT
            )
        if not is_supported(entity_type, event_type):
            raise ValidationError(
                f"unsupported event {entity_type}.{event_type}",
                code=ErrorCode.UNSUPPORTED_EVENT,
            )
        if not entity_id or not entity_id.strip():
            raise ValidationError(
                "entity id is required", code=ErrorCode.MISSING_ENTITY_ID, field="id"
            )

        table = TABLES[entity_type]

        if event_type == WebhookEventType.DELETED.value:
            removed = self._delete(table, entity_id)
            message = (
                f"{entity_type} {entity_id} deleted"
                if removed
                else f"{entity_type} {entity_id} already absent"
            )
            return ReconcileResult(success=True, message=message, action=SyncAction.DELETE)

        if entity_type == EntityType.PROPERTY.value:
            fields = ExternalProperty.from_upstream(payload, entity_id).mirrored_fields()
        else:
            fields = ExternalReservation.from_upstream(payload, entity_id).mirrored_fields()

        created = self._upsert(table, entity_id, fields)
        action = SyncAction.CREATE if created else SyncAction.UPDATE
        return ReconcileResult(
            success=True,
            message=f"{entity_type} {entity_id} {'created' if created else 'updated'}",
            action=action,
        )

    def _upsert(self, table: str, entity_id: str, fields: dict[str, Any]) -> bool:
        try:
            return self._db.upsert_by_upstream_id(table, entity_id, fields)
        except SERIALIZATION_EXCEPTIONS as e:
            raise ValidationError(
                f"payload cannot be stored: {type(e).__name__}", code=ErrorCode.INVALID_PAYLOAD
            ) from e
        except STORAGE_EXCEPTIONS as e:
            if is_validation_exception(e):
                raise ValidationError(
                    f"payload rejected by storage: {e}", code=ErrorCode.INVALID_PAYLOAD
                ) from e
            raise StorageError(f"upsert {table}", str(e)) from e

    def _delete(self, table: str, entity_id: str) -> bool:
        try:
            return self._db.delete_by_upstream_id(table, entity_id) is not None
        except STORAGE_EXCEPTIONS as e:
            raise StorageError(f"delete {table}", str(e)) from e

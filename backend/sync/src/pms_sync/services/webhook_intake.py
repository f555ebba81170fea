"""Durable intake log of every received webhook.

Events are recorded before any processing so a failed reconciliation can
be inspected and replayed. A record is only ever mutated once, to mark it
processed.

Bodies DynamoDB cannot hold as a map (numbers beyond its precision, items
over the size limit) are kept as text in ``payload_text`` instead, so the
delivery is still on record.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any

from pms_sync.models.errors import NotFoundError, StorageError
from pms_sync.models.webhook import WebhookEvent
from pms_sync.services.dynamodb import (
    SERIALIZATION_EXCEPTIONS,
    STORAGE_EXCEPTIONS,
    WEBHOOK_EVENTS_TABLE,
    DynamoDBService,
    is_validation_exception,
)
from pms_sync.utils.logging import get_logger

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 1000
# Bytes of body text kept when the payload has to be stored as text
MAX_PAYLOAD_TEXT_BYTES = 300_000


def payload_as_text(payload: dict[str, Any]) -> str:
    """JSON text of a payload, truncated to fit in one item."""
    text = json.dumps(payload, default=str, ensure_ascii=False)
    return truncate_text(text)


def truncate_text(text: str) -> str:
    encoded = text.encode("utf-8")
    if len(encoded) <= MAX_PAYLOAD_TEXT_BYTES:
        return text
    return encoded[:MAX_PAYLOAD_TEXT_BYTES].decode("utf-8", errors="ignore")


class WebhookIntakeLog:
    """Stores WebhookEvent records in DynamoDB."""

    def __init__(self, db: DynamoDBService) -> None:
        self._db = db

    def record(
        self,
        event_type: str,
        entity_type: str,
        entity_id: str,
        payload: dict[str, Any],
        signature: str = "",
        source_address: str = "",
        payload_text: str = "",
    ) -> str:
        """Persist a newly received webhook.

        Args:
            payload: Parsed webhook body
            payload_text: Raw body text, for deliveries that could not be parsed

        Returns:
            The new event_id

        Raises:
            StorageError: If the event could not be stored.
        """
        event = WebhookEvent(
            event_id=f"whe_{uuid.uuid4().hex}",
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload,
            payload_text=truncate_text(payload_text),
            signature=signature,
            source_address=source_address,
            received_at=datetime.now(timezone.utc),
        )

        try:
            created = self._put(event)
        except SERIALIZATION_EXCEPTIONS as e:
            created = self._put_as_text(event, e)
        except STORAGE_EXCEPTIONS as e:
            if not is_validation_exception(e):
                raise StorageError("record_webhook_event", str(e)) from e
            created = self._put_as_text(event, e)

        if not created:
            raise StorageError("record_webhook_event", f"duplicate event id {event.event_id}")
        return event.event_id

    def _put(self, event: WebhookEvent) -> bool:
        return self._db.put_time_ordered(
            WEBHOOK_EVENTS_TABLE,
            event.to_item(),
            condition_expression="attribute_not_exists(event_id)",
        )

    def _put_as_text(self, event: WebhookEvent, error: Exception) -> bool:
        logger.warning(
            "Storing webhook event %s payload as text: %s: %s",
            event.event_id,
            type(error).__name__,
            error,
        )
        fallback = event.model_copy(
            update={
                "payload": {},
                "payload_text": event.payload_text or payload_as_text(event.payload),
            }
        )
        try:
            return self._put(fallback)
        except (*STORAGE_EXCEPTIONS, *SERIALIZATION_EXCEPTIONS) as e:
            raise StorageError("record_webhook_event", str(e)) from e

    def mark_processed(self, event_id: str, error: str | None = None) -> None:
        """Mark an event processed, with the failure reason if it failed.

        Raises:
            StorageError: If the update could not be stored.
        """
        now = datetime.now(timezone.utc).isoformat()
        if error:
            expression = "SET processed = :p, processed_at = :now, processing_error = :err"
            values: dict[str, Any] = {
                ":p": True,
                ":now": now,
                ":err": error[:MAX_ERROR_LENGTH],
            }
        else:
            expression = "SET processed = :p, processed_at = :now REMOVE processing_error"
            values = {":p": True, ":now": now}

        try:
            updated = self._db.update_item(
                WEBHOOK_EVENTS_TABLE,
                {"event_id": event_id},
                expression,
                values,
                condition_expression="attribute_exists(event_id)",
            )
        except STORAGE_EXCEPTIONS as e:
            raise StorageError("mark_webhook_processed", str(e)) from e

        if updated is None:
            logger.warning("Cannot mark unknown webhook event %s processed", event_id)

    def get(self, event_id: str) -> WebhookEvent:
        """Load a recorded event.

        Raises:
            NotFoundError: If no such event exists.
            StorageError: If storage is unavailable.
        """
        try:
            item = self._db.get_item(WEBHOOK_EVENTS_TABLE, {"event_id": event_id})
        except STORAGE_EXCEPTIONS as e:
            raise StorageError("get_webhook_event", str(e)) from e
        if item is None:
            raise NotFoundError("webhook event", event_id)
        return WebhookEvent.from_item(item)

    def list_recent(self, limit: int = 50) -> list[WebhookEvent]:
        """Most recently received events first."""
        try:
            items = self._db.recent(WEBHOOK_EVENTS_TABLE, limit)
        except STORAGE_EXCEPTIONS as e:
            raise StorageError("list_webhook_events", str(e)) from e
        return [WebhookEvent.from_item(item) for item in items]

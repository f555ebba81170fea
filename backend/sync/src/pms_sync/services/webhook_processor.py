"""Webhook pipeline: envelope parsing, intake, reconciliation.

Business logic lives here rather than in the route so it can be unit
tested without HTTP and reused for replays of recorded events.
"""

import json
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from pms_sync.models.errors import StorageError, ValidationError
from pms_sync.models.webhook import WebhookEnvelope, normalize_entity_type, normalize_event_type
from pms_sync.services.reconciler import EntityReconciler, ReconcileResult
from pms_sync.services.webhook_intake import WebhookIntakeLog
from pms_sync.utils.logging import get_logger, log_webhook_event

logger = get_logger(__name__)

UNKNOWN = "unknown"


class ProcessingOutcome(BaseModel):
    """Result of handling one webhook delivery."""

    event_id: str
    entity_type: str
    event_type: str
    entity_id: str
    result: ReconcileResult


class WebhookProcessor:
    """Runs a verified webhook through intake and reconciliation."""

    def __init__(self, intake: WebhookIntakeLog, reconciler: EntityReconciler) -> None:
        self._intake = intake
        self._reconciler = reconciler

    @staticmethod
    def parse_envelope(body: bytes) -> WebhookEnvelope:
        """Parse the raw body (raises ValidationError when unparseable)."""
        return WebhookEnvelope.from_body(body)

    def receive(
        self,
        body: bytes,
        signature: str = "",
        source_address: str = "",
    ) -> ProcessingOutcome:
        """Parse, record and reconcile an authenticated delivery.

        A body that is not a webhook envelope is still recorded, as an
        already processed event with entity and event type "unknown", before
        the ValidationError is raised.

        Raises:
            ValidationError: If the body is not a webhook envelope.
            StorageError: If intake or reconciliation storage is unavailable.
        """
        try:
            envelope = self.parse_envelope(body)
        except ValidationError as e:
            self._record_rejected(body, e, signature, source_address)
            raise
        return self.handle(envelope, signature, source_address)

    def _record_rejected(
        self,
        body: bytes,
        error: ValidationError,
        signature: str,
        source_address: str,
    ) -> None:
        event_id = self._intake.record(
            event_type=UNKNOWN,
            entity_type=UNKNOWN,
            entity_id="",
            payload={},
            signature=signature,
            source_address=source_address,
            payload_text=body.decode("utf-8", errors="replace"),
        )
        self._intake.mark_processed(event_id, error.describe())
        log_webhook_event(
            logger,
            UNKNOWN,
            UNKNOWN,
            "",
            event_id=event_id,
            result="rejected",
            error=error.describe(),
        )


    def handle(
        self,
        envelope: WebhookEnvelope,
        signature: str = "",
        source_address: str = "",
    ) -> ProcessingOutcome:
        """Record, reconcile and mark a webhook processed.

        Retryable failures leave the event unprocessed and raise so the
        sender retries the delivery.

        Raises:
            StorageError: If intake or reconciliation storage is unavailable.
        """
        event_id = self._intake.record(
            event_type=envelope.event_type,
            entity_type=envelope.entity_type,
            entity_id=envelope.entity_id,
            payload=envelope.body,
            signature=signature,
            source_address=source_address,
        )
        log_webhook_event(
            logger,
            envelope.event_type,
            envelope.entity_type,
            envelope.entity_id,
            event_id=event_id,
            result="received",
        )
        return self._process(
            event_id,
            envelope.entity_type,
            envelope.event_type,
            envelope.entity_id,
            envelope.data,
        )

    def reprocess(self, event_id: str) -> ProcessingOutcome:
        """Replay a recorded event through the reconciler.

        Raises:
            NotFoundError: If the event does not exist.
            StorageError: If storage is unavailable.
        """
        event = self._intake.get(event_id)
        data = _entity_data(event.payload or _parse_text(event.payload_text))
        log_webhook_event(
            logger,
            event.event_type,
            event.entity_type,
            event.entity_id,
            event_id=event_id,
            result="reprocess",
        )
        return self._process(
            event_id,
            normalize_entity_type(event.entity_type),
            normalize_event_type(event.event_type),
            event.entity_id,
            data,
        )

    def _process(
        self,
        event_id: str,
        entity_type: str,
        event_type: str,
        entity_id: str,
        data: dict[str, Any],
    ) -> ProcessingOutcome:
        result = self._reconciler.reconcile(entity_type, event_type, entity_id, data)

        if result.retryable:
            log_webhook_event(
                logger,
                event_type,
                entity_type,
                entity_id,
                event_id=event_id,
                result="retry",
                error=result.message,
            )
            raise StorageError("reconcile", result.message)

        self._intake.mark_processed(event_id, None if result.success else result.message)
        log_webhook_event(
            logger,
            event_type,
            entity_type,
            entity_id,
            event_id=event_id,
            result="success" if result.success else "rejected",
            error=None if result.success else result.message,
            action=result.action.value,
        )
        return ProcessingOutcome(
            event_id=event_id,
            entity_type=entity_type,
            event_type=event_type,
            entity_id=entity_id,
            result=result,
        )


def _entity_data(payload: dict[str, Any]) -> dict[str, Any]:
    data = payload.get("data")
    return data if isinstance(data, dict) else {}


def _parse_text(text: str) -> dict[str, Any]:
    """Body stored as text; an unparseable one yields no data."""
    try:
        body = json.loads(text, parse_float=Decimal) if text else {}
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}

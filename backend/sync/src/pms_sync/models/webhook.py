"""Webhook event models: the inbound envelope and the intake log record."""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from .enums import ENTITY_TYPE_ALIASES, EVENT_TYPE_ALIASES, EntityType, WebhookEventType
from .errors import ErrorCode, ValidationError


class WebhookEnvelope(BaseModel):
    """Parsed form of an upstream webhook body.

    The provider sends ``{"event": "<entity>.<action>", "data": {...}}``.
    Unknown entity or action values are preserved as-is so the intake log
    still records them; reconciliation rejects them later.
    """

    event: str = Field(..., description="Raw event name, e.g. 'reservation.updated'")
    entity_type: str = Field(..., description="Normalized entity type")
    event_type: str = Field(..., description="Normalized action")
    entity_id: str = Field(default="", description="Upstream identifier from data.id/_id")
    data: dict[str, Any] = Field(default_factory=dict, description="Entity payload")
    body: dict[str, Any] = Field(default_factory=dict, description="Full webhook body")

    @classmethod
    def from_body(cls, raw: bytes) -> "WebhookEnvelope":
        """Parse a raw request body.

        Numbers with a fractional part are decoded as Decimal so the body can
        be stored in DynamoDB unchanged.

        Raises:
            ValidationError: If the body is not a JSON object with an event name.
        """
        try:
            body = json.loads(raw, parse_float=Decimal)
        except (UnicodeDecodeError, ValueError) as e:
            raise ValidationError(
                f"body is not valid JSON ({e})", code=ErrorCode.INVALID_PAYLOAD
            ) from e

        if not isinstance(body, dict):
            raise ValidationError(
                "body must be a JSON object", code=ErrorCode.INVALID_PAYLOAD
            )

        event = body.get("event")
        if not isinstance(event, str) or not event.strip():
            raise ValidationError(
                "missing 'event' field", code=ErrorCode.INVALID_PAYLOAD, field="event"
            )

        data = body.get("data")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValidationError(
                "'data' must be an object", code=ErrorCode.INVALID_PAYLOAD, field="data"
            )

        entity_part, _, action_part = event.strip().partition(".")
        entity_type = normalize_entity_type(entity_part)
        event_type = normalize_event_type(action_part or "unknown")

        return cls(
            event=event,
            entity_type=entity_type,
            event_type=event_type,
            entity_id=extract_entity_id(data),
            data=data,
            body=body,
        )


def normalize_entity_type(value: str) -> str:
    """Map upstream entity spellings (e.g. 'listing') onto local names."""
    key = (value or "").strip().lower()
    alias = ENTITY_TYPE_ALIASES.get(key)
    return alias.value if alias else key


def normalize_event_type(value: str) -> str:
    """Map upstream action spellings (e.g. 'cancelled') onto local names."""
    key = (value or "").strip().lower()
    alias = EVENT_TYPE_ALIASES.get(key)
    return alias.value if alias else key


def extract_entity_id(data: dict[str, Any]) -> str:
    """Return the upstream identifier from an entity payload, or ''."""
    for key in ("id", "_id"):
        value = data.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            text = str(value).strip()
            if text:
                return text
    return ""


def is_supported(entity_type: str, event_type: str) -> bool:
    """True when both values belong to the local vocabulary."""
    return entity_type in {e.value for e in EntityType} and event_type in {
        e.value for e in WebhookEventType
    }


class WebhookEvent(BaseModel):
    """Intake log record of a received webhook.

    Created on receipt, mutated once to mark it processed, never deleted.
    """

    event_id: str = Field(..., description="Local intake identifier")
    event_type: str = Field(..., description="created, updated, deleted (or raw unknown)")
    entity_type: str = Field(..., description="property, reservation (or raw unknown)")
    entity_id: str = Field(default="", description="Upstream identifier")
    payload: dict[str, Any] = Field(default_factory=dict, description="Raw webhook body")
    payload_text: str = Field(
        default="", description="Body as text when it could not be stored as a map"
    )
    signature: str = Field(default="", description="Signature header value as received")
    source_address: str = Field(default="", description="Sender IP address")
    received_at: datetime = Field(..., description="When the webhook was recorded")
    processed: bool = Field(default=False)
    processed_at: datetime | None = Field(default=None)
    processing_error: str | None = Field(default=None)

    def to_item(self) -> dict[str, Any]:
        """Serialize for DynamoDB."""
        item: dict[str, Any] = {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "payload": self.payload,
            "signature": self.signature,
            "source_address": self.source_address,
            "received_at": self.received_at.isoformat(),
            "processed": self.processed,
        }
        if self.payload_text:
            item["payload_text"] = self.payload_text
        if self.processed_at:
            item["processed_at"] = self.processed_at.isoformat()
        if self.processing_error:
            item["processing_error"] = self.processing_error
        return item

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "WebhookEvent":
        """Deserialize from a DynamoDB item."""
        return cls(
            event_id=item["event_id"],
            event_type=item.get("event_type", ""),
            entity_type=item.get("entity_type", ""),
            entity_id=item.get("entity_id", ""),
            payload=item.get("payload") or {},
            payload_text=item.get("payload_text", ""),
            signature=item.get("signature", ""),
            source_address=item.get("source_address", ""),
            received_at=datetime.fromisoformat(item["received_at"]),
            processed=bool(item.get("processed", False)),
            processed_at=(
                datetime.fromisoformat(item["processed_at"])
                if item.get("processed_at")
                else None
            ),
            processing_error=item.get("processing_error"),
        )

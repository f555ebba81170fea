"""Webhook endpoints for the upstream property-management provider.

Provides endpoints for:
- Receiving signed property/reservation change notifications
- Inspecting recorded deliveries and replaying one through reconciliation

The receiving endpoint does NOT require user authentication; payloads are
authenticated with the shared HMAC secret instead.
"""

from fastapi import APIRouter, Depends, Query, Request
from starlette.concurrency import run_in_threadpool

from pms_sync.config import SyncSettings
from pms_sync.models.errors import ErrorResponse
from pms_sync.models.webhook import WebhookEvent
from pms_sync.services.signature import SignatureVerifier
from pms_sync.services.webhook_intake import WebhookIntakeLog
from pms_sync.services.webhook_processor import ProcessingOutcome, WebhookProcessor
from pms_sync.utils.logging import get_logger
from pms_sync_api.dependencies import (
    get_intake_log,
    get_signature_verifier,
    get_sync_settings,
    get_webhook_processor,
)
from pms_sync_api.models.responses import WebhookAck, WebhookEventList

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


def _ack(outcome: ProcessingOutcome) -> WebhookAck:
    result = outcome.result
    return WebhookAck(
        event_id=outcome.event_id,
        entity_type=outcome.entity_type,
        event_type=outcome.event_type,
        entity_id=outcome.entity_id,
        processing_result="success" if result.success else "error",
        action=result.action.value,
        message=result.message,
    )


@router.post(
    "/webhooks/pms",
    summary="Receive PMS webhook events",
    description="""
Endpoint for property and reservation change notifications from the PMS.

The body is `{"event": "<entity>.<action>", "data": {...}}` where entity is
`property` (or `listing`) or `reservation`, and action is `created`,
`updated` or `deleted`.

**Signature**: HMAC-SHA256 hex digest of the raw body in the signature
header (default `X-PMS-Signature`, optionally prefixed `sha256=`).

**Idempotent**: replaying a delivery leaves one mirror row per upstream id.
Payloads that fail validation are acknowledged with 200 and
`processing_result: "error"` so they are not retried forever. Bodies that
are not an envelope at all are recorded, then rejected with 400.
""",
    response_model=WebhookAck,
    responses={
        200: {"description": "Delivery recorded and processed", "model": WebhookAck},
        400: {"description": "Body is not a webhook envelope", "model": ErrorResponse},
        401: {"description": "Missing or invalid signature", "model": ErrorResponse},
        503: {"description": "Storage unavailable; retry later", "model": ErrorResponse},
    },
)
async def receive_pms_webhook(
    request: Request,
    settings: SyncSettings = Depends(get_sync_settings),
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> WebhookAck:
    """Verify, record and reconcile one delivery."""
    body = await request.body()
    signature = request.headers.get(settings.signature_header)

    verifier.require_authentic(body, signature)

    source_address = request.client.host if request.client else ""
    outcome = await run_in_threadpool(
        processor.receive, body, signature or "", source_address
    )
    return _ack(outcome)


@router.get(
    "/webhooks/pms/events",
    summary="List recent webhook deliveries",
    response_model=WebhookEventList,
)
def list_webhook_events(
    limit: int = Query(default=50, ge=1, le=500),
    intake: WebhookIntakeLog = Depends(get_intake_log),
) -> WebhookEventList:
    events = intake.list_recent(limit)
    return WebhookEventList(events=events, count=len(events))


@router.get(
    "/webhooks/pms/events/{event_id}",
    summary="Get one webhook delivery",
    response_model=WebhookEvent,
    responses={404: {"description": "Unknown event", "model": ErrorResponse}},
)
def get_webhook_event(
    event_id: str,
    intake: WebhookIntakeLog = Depends(get_intake_log),
) -> WebhookEvent:
    return intake.get(event_id)


@router.post(
    "/webhooks/pms/events/{event_id}/reprocess",
    summary="Replay a recorded webhook delivery",
    description="Runs a recorded event through reconciliation again, e.g. after fixing data upstream or recovering from a storage outage.",
    response_model=WebhookAck,
    responses={
        404: {"description": "Unknown event", "model": ErrorResponse},
        503: {"description": "Storage unavailable", "model": ErrorResponse},
    },
)
def reprocess_webhook_event(
    event_id: str,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> WebhookAck:
    return _ack(processor.reprocess(event_id))

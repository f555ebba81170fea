#!/usr/bin/env python3
"""Send a signed sample PMS webhook to a running API.

Signs the body with the shared secret exactly like the provider does, so
the full intake path (signature, intake log, reconciliation) can be
exercised against a local server.

Usage:
    python scripts/send_test_webhook.py reservation.created
    python scripts/send_test_webhook.py property.updated --id P1
    python scripts/send_test_webhook.py reservation.cancelled --url http://localhost:8080
    python scripts/send_test_webhook.py property.created --bad-signature
"""

import argparse
import json
import os
import sys
from typing import Any

import httpx

from pms_sync.services.signature import compute_signature

DEFAULT_URL = "http://localhost:8080"


def sample_property(entity_id: str) -> dict[str, Any]:
    return {
        "_id": entity_id,
        "nickname": "Quesada Villa",
        "title": "Villa with private pool",
        "address": {
            "full": "Calle Mayor 12, 03170 Ciudad Quesada",
            "city": "Ciudad Quesada",
            "country": "Spain",
        },
        "bedrooms": 3,
        "bathrooms": 2,
        "accommodates": 6,
        "amenities": ["wifi", "pool", "parking"],
        "propertyType": "villa",
    }


def sample_reservation(entity_id: str, status: str = "confirmed") -> dict[str, Any]:
    return {
        "_id": entity_id,
        "confirmationCode": "HM4ZQX2K",
        "status": status,
        "source": "airbnb",
        "checkIn": "2025-08-01T15:00:00Z",
        "checkOut": "2025-08-08T10:00:00Z",
        "guest": {"fullName": "Jane Doe", "email": "jane@example.com"},
        "listing": {"_id": "P1"},
        "money": {"total": 1260.0, "currency": "EUR"},
        "guests": {"total": 4},
    }


def build_event(event: str, entity_id: str | None) -> dict[str, Any]:
    entity, _, action = event.partition(".")
    if action == "deleted":
        data: dict[str, Any] = {"_id": entity_id or "P1"}
    elif entity in ("property", "listing"):
        data = sample_property(entity_id or "P1")
    elif entity == "reservation":
        status = "cancelled" if action in ("cancelled", "canceled") else "confirmed"
        data = sample_reservation(entity_id or "R1", status)
    else:
        data = {"id": entity_id or "X1"}
    return {"event": event, "data": data}


def main() -> int:
    parser = argparse.ArgumentParser(description="Send a signed sample PMS webhook")
    parser.add_argument(
        "event",
        help="Event name, e.g. property.created, reservation.updated, reservation.cancelled",
    )
    parser.add_argument("--id", dest="entity_id", default=None, help="Upstream entity id")
    parser.add_argument(
        "--url",
        default=os.environ.get("PMS_SYNC_API_URL", DEFAULT_URL),
        help=f"API base URL (default: {DEFAULT_URL})",
    )
    parser.add_argument(
        "--secret",
        default=os.environ.get("PMS_WEBHOOK_SECRET"),
        help="Shared webhook secret (default: PMS_WEBHOOK_SECRET env var)",
    )
    parser.add_argument(
        "--header",
        default=os.environ.get("WEBHOOK_SIGNATURE_HEADER", "X-PMS-Signature"),
        help="Signature header name",
    )
    parser.add_argument(
        "--bad-signature",
        action="store_true",
        help="Send a wrong signature to check the 401 path",
    )
    args = parser.parse_args()

    if not args.secret:
        print("❌ No secret: pass --secret or set PMS_WEBHOOK_SECRET")
        return 1

    body = json.dumps(build_event(args.event, args.entity_id)).encode("utf-8")
    signature = compute_signature(body, args.secret)
    if args.bad_signature:
        signature = "0" * len(signature)

    url = f"{args.url.rstrip('/')}/api/webhooks/pms"
    try:
        response = httpx.post(
            url,
            content=body,
            headers={"Content-Type": "application/json", args.header: signature},
            timeout=10.0,
        )
    except httpx.HTTPError as e:
        print(f"❌ Request failed: {e}")
        return 1

    print(f"{response.status_code} {url}")
    print(json.dumps(response.json(), indent=2))
    return 0 if response.status_code < 400 else 1


if __name__ == "__main__":
    sys.exit(main())

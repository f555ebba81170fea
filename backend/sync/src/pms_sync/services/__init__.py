"""Services for the PMS sync subsystem."""

from .calendar_cache import CalendarCache
from .calendar_fetcher import CalendarFeedFetcher
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .property_calendar import PropertyCalendarService
from .reconciler import EntityReconciler, ReconcileResult
from .signature import SignatureVerifier
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .sync_audit import SyncAuditLog
from .webhook_intake import WebhookIntakeLog
from .webhook_processor import ProcessingOutcome, WebhookProcessor

__all__ = [
    "CalendarCache",
    "CalendarFeedFetcher",
    "DynamoDBService",
    "get_dynamodb_service",
    "reset_dynamodb_service",
    "EntityReconciler",
    "ReconcileResult",
    "PropertyCalendarService",
    "SignatureVerifier",
    "SSMService",
    "SSMServiceError",
    "get_ssm_service",
    "SyncAuditLog",
    "WebhookIntakeLog",
    "ProcessingOutcome",
    "WebhookProcessor",
]

"""FastAPI dependency providers for the sync services.

Factories are cached with @lru_cache so each process holds one instance of
every service; the calendar cache in particular must be shared.

Service Dependency Graph:
    DynamoDBService (singleton via get_dynamodb_service)
        ├── SyncAuditLog
        │       ├── EntityReconciler
        │       │       └── WebhookProcessor (+ WebhookIntakeLog)
        │       └── CalendarFeedFetcher
        │               └── CalendarCache
        │                       └── PropertyCalendarService
        └── WebhookIntakeLog
    SyncSettings
        └── SignatureVerifier

Testing:
    Use reset_services() to clear cached instances between tests.
"""

from datetime import timedelta
from functools import lru_cache

from pms_sync.config import SyncSettings, get_settings
from pms_sync.services.calendar_cache import CalendarCache
from pms_sync.services.calendar_fetcher import CalendarFeedFetcher
from pms_sync.services.dynamodb import get_dynamodb_service, reset_dynamodb_service
from pms_sync.services.property_calendar import PropertyCalendarService
from pms_sync.services.reconciler import EntityReconciler
from pms_sync.services.signature import SignatureVerifier
from pms_sync.services.ssm_service import get_ssm_service
from pms_sync.services.sync_audit import SyncAuditLog
from pms_sync.services.webhook_intake import WebhookIntakeLog
from pms_sync.services.webhook_processor import WebhookProcessor


def get_sync_settings() -> SyncSettings:
    return get_settings()


@lru_cache
def get_signature_verifier() -> SignatureVerifier:
    return SignatureVerifier(get_settings())


@lru_cache
def get_audit_log() -> SyncAuditLog:
    return SyncAuditLog(db=get_dynamodb_service())


@lru_cache
def get_intake_log() -> WebhookIntakeLog:
    return WebhookIntakeLog(db=get_dynamodb_service())


@lru_cache
def get_reconciler() -> EntityReconciler:
    return EntityReconciler(db=get_dynamodb_service(), audit=get_audit_log())


@lru_cache
def get_webhook_processor() -> WebhookProcessor:
    """WebhookProcessor wired to the intake log and reconciler."""
    return WebhookProcessor(intake=get_intake_log(), reconciler=get_reconciler())


@lru_cache
def get_calendar_fetcher() -> CalendarFeedFetcher:
    return CalendarFeedFetcher(settings=get_settings(), audit=get_audit_log())


@lru_cache
def get_calendar_cache() -> CalendarCache:
    """Process-wide calendar cache configured from settings."""
    settings = get_settings()
    return CalendarCache(
        fetcher=get_calendar_fetcher(),
        ttl=timedelta(minutes=settings.calendar_cache_ttl_minutes),
        error_ttl=timedelta(minutes=settings.calendar_error_ttl_minutes),
        max_entries=settings.calendar_cache_max_entries,
    )


@lru_cache
def get_property_calendar_service() -> PropertyCalendarService:
    return PropertyCalendarService(db=get_dynamodb_service(), cache=get_calendar_cache())


def reset_services() -> None:
    """Clear all cached service instances (for testing).

    Also resets the DynamoDB singleton and re-reads settings, so tests can
    change environment variables and start inside a fresh mock_aws context.
    """
    if get_calendar_fetcher.cache_info().currsize:
        get_calendar_fetcher().close()

    get_property_calendar_service.cache_clear()
    get_calendar_cache.cache_clear()
    get_calendar_fetcher.cache_clear()
    get_webhook_processor.cache_clear()
    get_reconciler.cache_clear()
    get_intake_log.cache_clear()
    get_audit_log.cache_clear()
    get_signature_verifier.cache_clear()
    get_ssm_service.cache_clear()
    get_settings.cache_clear()
    reset_dynamodb_service()

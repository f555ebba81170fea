"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- Structured logging formatter for consistent log output
- Helper functions for webhook and sync operation logging

Usage:
    from pms_sync.utils.logging import get_logger, set_correlation_id

    # In middleware/request handler:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    logger.info("Reconciled property", extra={"entity_id": "P1"})
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

# Context variable for correlation ID - thread-safe and async-safe
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def generate_correlation_id() -> str:
    """Generate a new correlation ID.

    Returns:
        UUID-based correlation ID string
    """
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID context."""
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter for structured log output with correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)

        # Prefix for easy grep/filtering
        return f"[{record.correlation_id}] {base}"


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


def configure_logging(level: str = "INFO") -> None:
    """Install a structured stream handler on the root logger.

    Replaces existing root handlers so repeated calls (Lambda warm starts,
    test sessions) do not duplicate output.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(DEFAULT_FORMAT))
    handler.addFilter(CorrelationIdFilter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def log_webhook_event(
    logger: logging.Logger,
    event_type: str,
    entity_type: str,
    entity_id: str,
    *,
    event_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a webhook event with structured context.

    Args:
        logger: Logger instance
        event_type: Webhook action (created, updated, deleted)
        entity_type: Entity kind (property, reservation)
        entity_id: Upstream entity identifier
        event_id: Intake log event ID if already recorded
        result: Processing result (received, success, error, ...)
        error: Error message if processing failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "event_type": event_type,
        "entity_type": entity_type,
        "entity_id": entity_id,
    }

    if event_id:
        context["event_id"] = event_id
    if result:
        context["result"] = result
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Webhook event: {entity_type}.{event_type} ({entity_id or 'no-id'})"]
    if event_id:
        msg_parts.append(f"event={event_id}")
    if result:
        msg_parts.append(f"result={result}")
    if error:
        msg_parts.append(f"error={error}")

    message = " | ".join(msg_parts)

    if result == "error":
        logger.error(message, extra=context)
    elif result in ("retry", "rejected"):
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_sync_operation(
    logger: logging.Logger,
    operation: str,
    *,
    sync_type: str | None = None,
    entity_id: str | None = None,
    feed_url: str | None = None,
    count: int | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a reconciliation or calendar fetch with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "upsert", "delete", "calendar_fetch")
        sync_type: Sync log type if relevant
        entity_id: Upstream entity identifier if relevant
        feed_url: Calendar feed URL if relevant
        count: Number of items affected or parsed
        error: Error message if operation failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"operation": operation}

    if sync_type:
        context["sync_type"] = sync_type
    if entity_id:
        context["entity_id"] = entity_id
    if feed_url:
        context["feed_url"] = feed_url
    if count is not None:
        context["count"] = count
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Sync operation: {operation}"]
    for key, value in context.items():
        if key != "operation":
            msg_parts.append(f"{key}={value}")

    message = " | ".join(msg_parts)

    if error:
        logger.error(message, extra=context)
    else:
        logger.info(message, extra=context)

"""External synchronization subsystem: PMS webhooks and calendar feeds."""

__version__ = "0.1.0"

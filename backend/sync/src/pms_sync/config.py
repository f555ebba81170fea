"""Runtime settings loaded from environment variables."""

import os
from functools import lru_cache

from pydantic import BaseModel, Field

PRODUCTION_LIKE_ENVIRONMENTS = frozenset({"prod", "production", "staging"})

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _env_str(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


class SyncSettings(BaseModel):
    """Settings for webhook intake and calendar feed handling."""

    environment: str = Field(default="dev")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Webhook authentication
    webhook_secret: str | None = Field(default=None, repr=False)
    webhook_secret_parameter: str | None = Field(default=None)
    signature_header: str = Field(default="X-PMS-Signature")
    dev_bypass_signature: str | None = Field(default=None, repr=False)

    # Calendar feeds
    calendar_cache_ttl_minutes: int = Field(default=60, ge=1)
    calendar_error_ttl_minutes: int = Field(default=10, ge=1)
    calendar_fetch_timeout_seconds: float = Field(default=15.0, gt=0)
    calendar_probe_timeout_seconds: float = Field(default=5.0, gt=0)
    calendar_probe_urls: bool = Field(default=True)
    calendar_user_agent: str = Field(default="pms-sync-calendar/0.1")
    calendar_cache_max_entries: int = Field(default=256, ge=1)

    # Storage
    table_prefix: str | None = Field(default=None)

    @property
    def is_production_like(self) -> bool:
        return self.environment.lower() in PRODUCTION_LIKE_ENVIRONMENTS

    @property
    def signature_bypass_allowed(self) -> bool:
        """True only for debug builds outside production-like environments."""
        return (
            self.debug
            and not self.is_production_like
            and bool(self.dev_bypass_signature)
        )

    @classmethod
    def from_env(cls) -> "SyncSettings":
        """Build settings from the process environment."""
        return cls(
            environment=os.environ.get("ENVIRONMENT", "dev"),
            debug=_env_bool("DEBUG"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            webhook_secret=_env_str("PMS_WEBHOOK_SECRET"),
            webhook_secret_parameter=_env_str("PMS_WEBHOOK_SECRET_PARAMETER"),
            signature_header=_env_str("WEBHOOK_SIGNATURE_HEADER") or "X-PMS-Signature",
            dev_bypass_signature=_env_str("WEBHOOK_DEV_BYPASS_SIGNATURE"),
            calendar_cache_ttl_minutes=_env_int("CALENDAR_CACHE_TTL_MINUTES", 60),
            calendar_error_ttl_minutes=_env_int("CALENDAR_ERROR_TTL_MINUTES", 10),
            calendar_fetch_timeout_seconds=float(
                os.environ.get("CALENDAR_FETCH_TIMEOUT_SECONDS", "15")
            ),
            calendar_probe_urls=_env_bool("CALENDAR_PROBE_URLS", default=True),
            calendar_user_agent=os.environ.get(
                "CALENDAR_USER_AGENT", "pms-sync-calendar/0.1"
            ),
            table_prefix=_env_str("DYNAMODB_TABLE_PREFIX"),
        )


@lru_cache(maxsize=1)
def get_settings() -> SyncSettings:
    """Get the process-wide settings (read once from the environment)."""
    return SyncSettings.from_env()

"""Configuration for tieraccess.

Pydantic-validated settings shared by the engine, the usage store, logging,
and the protection guards. Direct os.environ/os.getenv usage outside
:func:`load_config_from_env` is not allowed for any setting defined here.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes", "on")


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class UsageBackend(str, Enum):
    """Where usage counters live."""

    MEMORY = "memory"
    REDIS = "redis"


class EnforcementMode(str, Enum):
    """Three-state enforcement toggle for guards and interceptors.

    - ``off``     — no checks, only caller logging.
    - ``warn``    — check, log denials as WARNING, but allow through.
    - ``enforce`` — check and deny on failure (production).
    """

    OFF = "off"
    WARN = "warn"
    ENFORCE = "enforce"

    @classmethod
    def parse(cls, raw: str | None, default: EnforcementMode | None = None) -> EnforcementMode:
        fallback = default or cls.ENFORCE
        if not raw:
            return fallback
        try:
            return cls(raw.strip().lower())
        except ValueError:
            logger.warning("Unknown enforcement mode %r, defaulting to '%s'", raw, fallback.value)
            return fallback


class AccessConfig(BaseModel):
    """Settings for the tier access control engine and its guards."""

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )
    service_name: Optional[str] = Field(
        default=None,
        description="Service name attached to log records",
    )

    # Usage counters
    usage_backend: UsageBackend = Field(
        default=UsageBackend.MEMORY,
        description="Usage counter store: memory (single process) or redis (shared)",
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL (e.g., redis://localhost:6379/0)",
    )
    usage_key_prefix: str = Field(
        default="tieraccess:usage",
        description="Namespace prepended to usage counter keys in Redis",
    )

    # Enforcement
    enforcement: EnforcementMode = Field(
        default=EnforcementMode.ENFORCE,
        description="Guard/interceptor mode: off | warn | enforce",
    )
    audit_enabled: bool = Field(
        default=True,
        description="Emit access audit records",
    )
    redirect_base_url: str = Field(
        default="",
        description="Base URL for sign-in, subscription, and upgrade redirects",
    )

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("Redis URL must start with redis://, rediss://, or unix://")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    @field_validator("usage_backend", "enforcement", mode="before")
    @classmethod
    def lowercase_choice(cls, v: object) -> object:
        if isinstance(v, str) and not isinstance(v, Enum):
            return v.strip().lower()
        return v

    model_config = {
        "use_enum_values": True,
        "extra": "forbid",
    }


def load_config_from_env() -> AccessConfig:
    """Load configuration from environment variables.

    This is the ONLY place where os.getenv is allowed for these settings.

    Environment variables:
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - LOG_JSON: Use JSON log format (true/false, default: false)
    - SERVICE_NAME: Service name for log records
    - TIERACCESS_USAGE_BACKEND: memory | redis (default: memory)
    - REDIS_URL: Redis connection URL
    - TIERACCESS_USAGE_PREFIX: Redis key prefix for usage counters
    - SECURITY_ENFORCEMENT: off | warn | enforce (default: enforce)
    - TIERACCESS_AUDIT_ENABLED: Emit audit records (default: true)
    - TIERACCESS_REDIRECT_BASE_URL: Base URL for guard redirects

    Returns:
        AccessConfig instance with values from environment or defaults.
    """
    import os

    return AccessConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "false").lower() in _TRUTHY,
        service_name=os.getenv("SERVICE_NAME"),
        usage_backend=os.getenv("TIERACCESS_USAGE_BACKEND", "memory"),
        redis_url=os.getenv("REDIS_URL") or None,
        usage_key_prefix=os.getenv("TIERACCESS_USAGE_PREFIX", "tieraccess:usage"),
        enforcement=EnforcementMode.parse(os.getenv("SECURITY_ENFORCEMENT")),
        audit_enabled=os.getenv("TIERACCESS_AUDIT_ENABLED", "true").lower() in _TRUTHY,
        redirect_base_url=os.getenv("TIERACCESS_REDIRECT_BASE_URL", ""),
    )


__all__ = [
    "AccessConfig",
    "EnforcementMode",
    "LogLevel",
    "UsageBackend",
    "load_config_from_env",
]

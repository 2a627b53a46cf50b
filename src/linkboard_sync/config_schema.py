"""Unified configuration schema for linkboard_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the remote store, sync tuning and logging.  ``to_fallbacks``
flattens a validated config into the keyword form ``load_config`` takes as
its lowest-precedence layer.

Usage:
    from linkboard_sync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Supabase connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="Supabase project URL")
    key: str | None = Field(default=None, description="Supabase anon API key")
    access_token: str | None = Field(
        default=None, description="Session access token"
    )
    refresh_token: str | None = Field(
        default=None, description="Session refresh token"
    )
    max_parallel_requests: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum concurrent requests to the remote store (1-32)",
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Read timeout per request in seconds"
    )

    model_config = {"frozen": True}


class SyncSettings(BaseModel):
    """Sync engine tuning."""

    cache_dir: str | None = Field(
        default=None, description="Directory of the local JSON cache"
    )
    debounce_seconds: float = Field(default=2.0, ge=0)
    direction_threshold_ms: int = Field(default=5000, ge=0)
    max_retries: int = Field(default=3, ge=0, le=10)
    retry_delay: float = Field(default=0.1, ge=0)

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", pattern="^(text|json)$")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` is always valid.
    """

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the merged YAML dict.

    Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten *unified* into ``Config`` field names.

    Only values that were set in the file, or that have a default, are
    returned; ``None`` entries are dropped so they never mask env vars.
    """
    remote = unified.remote
    sync = unified.sync
    flat: dict[str, Any] = {
        "supabase_url": remote.url,
        "supabase_key": remote.key,
        "access_token": remote.access_token,
        "refresh_token": remote.refresh_token,
        "max_parallel_requests": remote.max_parallel_requests,
        "request_timeout": remote.request_timeout,
        "cache_dir": sync.cache_dir,
        "debounce_seconds": sync.debounce_seconds,
        "direction_threshold_ms": sync.direction_threshold_ms,
        "max_retries": sync.max_retries,
        "retry_delay": sync.retry_delay,
        "debug": unified.logging.level.upper() == "DEBUG",
    }
    return {k: v for k, v in flat.items() if v is not None}

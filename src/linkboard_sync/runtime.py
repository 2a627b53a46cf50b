"""Startup and shutdown of a ready-to-use ``SyncEngine``."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .auth import SessionProvider
from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config, to_fallbacks
from .core.async_utils import init_semaphore
from .core.client import SupabaseClient
from .store.local import JsonFileStore, LocalStore
from .store.remote import SupabaseRemoteStore
from .sync.debounce import Debouncer
from .sync.engine import SyncEngine
from .sync.queue import SyncQueue
from .sync.state import SyncState

logger = logging.getLogger(__name__)


def load_settings(
    overrides: dict[str, Any] | None = None,
) -> tuple[Config, UnifiedConfig]:
    """
    Resolve configuration from every source.

    Precedence: CLI overrides > env vars (``.env`` loaded first) > YAML >
    defaults.  ``.env`` is loaded before the YAML files so ``${VAR}``
    interpolation can see its values.

    Args:
        overrides: CLI values keyed by ``load_config`` argument name
            (url, key, access_token, refresh_token, cache_dir, debug).

    Returns:
        The validated ``Config`` and the YAML ``UnifiedConfig`` (for the
        logging section).

    Raises:
        ConfigError: If required settings are missing or invalid.
    """
    load_dotenv()

    unified = build_config(load_hierarchical_config())
    config_files = discover_config_files()
    if config_files:
        logger.info("Config file: %s", config_files[0])

    opts = overrides or {}
    config = load_config(
        url=opts.get("url"),
        key=opts.get("key"),
        access_token=opts.get("access_token"),
        refresh_token=opts.get("refresh_token"),
        cache_dir=opts.get("cache_dir"),
        debug=opts.get("debug", False),
        yaml_fallbacks=to_fallbacks(unified),
    )
    logger.info("Supabase URL: %s", config.supabase_url)
    return config, unified


def build_engine(config: Config) -> SyncEngine:
    """Wire the client, stores, session provider and engine for *config*."""
    client = SupabaseClient(config)
    sessions = SessionProvider(
        client,
        access_token=config.access_token,
        refresh_token=config.refresh_token,
    )
    cache_dir = Path(config.cache_dir).expanduser()
    local = LocalStore(JsonFileStore(cache_dir))
    remote = SupabaseRemoteStore(client, sessions)

    state = SyncState()
    return SyncEngine(
        local,
        remote,
        sessions,
        state=state,
        queue=SyncQueue(
            state,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
        ),
        debouncer=Debouncer(config.debounce_seconds),
        direction_threshold_ms=config.direction_threshold_ms,
    )


@asynccontextmanager
async def engine_lifespan(config: Config) -> AsyncIterator[SyncEngine]:
    """
    Build an engine for *config* and shut it down cleanly.

    On startup the remote request semaphore is sized from
    ``config.max_parallel_requests``.  On exit the pending debounce is
    cancelled and queued operations are awaited.
    """
    init_semaphore(config.max_parallel_requests)
    engine = build_engine(config)
    logger.info("Sync engine ready (cache: %s)", config.cache_dir)
    try:
        yield engine
    finally:
        await engine.aclose()
        logger.info("Sync engine shut down")

"""Runtime configuration for linkboard-sync.

Reads remote store settings and sync tuning from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    LINKBOARD_SUPABASE_URL: Supabase project URL (required)
    LINKBOARD_SUPABASE_KEY: Supabase anon/public API key (required)
    LINKBOARD_ACCESS_TOKEN: Session access token (optional)
    LINKBOARD_REFRESH_TOKEN: Session refresh token (optional)
    LINKBOARD_CACHE_DIR: Local cache directory (optional, default: ~/.cache/linkboard)
    LINKBOARD_DEBOUNCE_SECONDS: Debounce window (optional, default: 2.0)
    LINKBOARD_MAX_RETRIES: Queue retry bound (optional, default: 3)
    LINKBOARD_MAX_PARALLEL_REQUESTS: Concurrent remote requests (optional, default: 4)
    LINKBOARD_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = "~/.cache/linkboard"


@dataclass
class Config:
    supabase_url: str
    supabase_key: str
    access_token: str | None = None
    refresh_token: str | None = None
    cache_dir: str = DEFAULT_CACHE_DIR
    debounce_seconds: float = 2.0
    direction_threshold_ms: int = 5000
    max_retries: int = 3
    retry_delay: float = 0.1
    max_parallel_requests: int = 4
    request_timeout: float = 30.0
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ConfigError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ConfigError: If the URL format is invalid, the API key is empty, or
            a tuning value is out of range.
    """
    config.supabase_url = config.supabase_url.strip()

    if not config.supabase_url.startswith(("http://", "https://")):
        raise ConfigError(
            f"Invalid Supabase URL '{config.supabase_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.supabase_url)
    if not parsed.hostname:
        raise ConfigError(
            f"Invalid Supabase URL '{config.supabase_url}': URL must include a hostname"
        )

    config.supabase_url = config.supabase_url.removesuffix("/")

    if not config.supabase_key.strip():
        raise ConfigError(
            "Supabase API key cannot be empty. Set LINKBOARD_SUPABASE_KEY environment variable."
        )

    if config.debounce_seconds < 0:
        raise ConfigError("debounce_seconds must not be negative")
    if not (0 <= config.max_retries <= 10):
        raise ConfigError("max_retries must be between 0 and 10")
    if not (1 <= config.max_parallel_requests <= 32):
        raise ConfigError("max_parallel_requests must be between 1 and 32")


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_number_env(key: str, cast: type, fallback, default):
    """Resolve a numeric setting: env var > YAML fallback > default."""
    raw = os.getenv(key)
    if raw is not None:
        try:
            return cast(raw)
        except ValueError:
            raise ConfigError(f"Invalid {key} '{raw}': must be a number") from None
    if fallback is not None:
        return cast(fallback)
    return default


def load_config(
    url: str | None = None,
    key: str | None = None,
    access_token: str | None = None,
    refresh_token: str | None = None,
    cache_dir: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override Supabase URL.
        key: Override Supabase API key.
        access_token: Override session access token.
        refresh_token: Override session refresh token.
        cache_dir: Override local cache directory.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML config file, keyed
            by ``Config`` field name.

    Returns:
        Validated Config instance.

    Raises:
        ConfigError: If the URL or API key is missing after checking all
            sources, or a value is invalid.
    """
    fb = yaml_fallbacks or {}

    supabase_url = url or os.getenv("LINKBOARD_SUPABASE_URL") or fb.get("supabase_url")
    if not supabase_url:
        raise ConfigError(
            "Supabase URL not found. Set LINKBOARD_SUPABASE_URL environment variable, "
            "pass --url CLI argument, or add 'remote.url' to config.yml."
        )

    supabase_key = key or os.getenv("LINKBOARD_SUPABASE_KEY") or fb.get("supabase_key")
    if not supabase_key:
        raise ConfigError(
            "Supabase API key not found. Set LINKBOARD_SUPABASE_KEY environment variable, "
            "pass --key CLI argument, or add 'remote.key' to config.yml."
        )

    final_access = (
        access_token or os.getenv("LINKBOARD_ACCESS_TOKEN") or fb.get("access_token")
    )
    final_refresh = (
        refresh_token
        or os.getenv("LINKBOARD_REFRESH_TOKEN")
        or fb.get("refresh_token")
    )
    final_cache_dir = (
        cache_dir
        or os.getenv("LINKBOARD_CACHE_DIR")
        or fb.get("cache_dir")
        or DEFAULT_CACHE_DIR
    )

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("LINKBOARD_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    config = Config(
        supabase_url=supabase_url,
        supabase_key=supabase_key,
        access_token=final_access,
        refresh_token=final_refresh,
        cache_dir=final_cache_dir,
        debounce_seconds=_get_number_env(
            "LINKBOARD_DEBOUNCE_SECONDS", float, fb.get("debounce_seconds"), 2.0
        ),
        direction_threshold_ms=_get_number_env(
            "LINKBOARD_DIRECTION_THRESHOLD_MS",
            int,
            fb.get("direction_threshold_ms"),
            5000,
        ),
        max_retries=_get_number_env(
            "LINKBOARD_MAX_RETRIES", int, fb.get("max_retries"), 3
        ),
        retry_delay=_get_number_env(
            "LINKBOARD_RETRY_DELAY", float, fb.get("retry_delay"), 0.1
        ),
        max_parallel_requests=_get_number_env(
            "LINKBOARD_MAX_PARALLEL_REQUESTS",
            int,
            fb.get("max_parallel_requests"),
            4,
        ),
        request_timeout=_get_number_env(
            "LINKBOARD_REQUEST_TIMEOUT", float, fb.get("request_timeout"), 30.0
        ),
        debug=final_debug,
    )

    validate_config(config)

    return config

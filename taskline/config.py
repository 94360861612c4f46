"""
Central configuration loader for Taskline.

Reads ``config/config.yaml`` and ``.env``, merges environment-variable
overrides (``TASKLINE_`` prefix), and exposes a typed :class:`Settings`
singleton via :func:`get_settings`.
"""

import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from taskline.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Resolve project root (directory containing ``config/``)
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent          # taskline/
_PROJECT_ROOT = _THIS_DIR.parent                     # repo root

TIER_NAMES = ("exact", "fuzzy", "pattern", "fallback")


def _project_path(*parts: str) -> Path:
    """Build an absolute path relative to the project root."""
    return _PROJECT_ROOT.joinpath(*parts)


def default_socket_path() -> str:
    """Socket location used when none is configured."""
    return str(Path(tempfile.gettempdir()) / "taskline.sock")


# ---------------------------------------------------------------------------
# Nested settings dataclasses
# ---------------------------------------------------------------------------


@dataclass
class CacheSettings:
    capacity: int = 1000
    fuzzy_threshold: float = 0.85
    fuzzy_enabled: bool = True
    cache_partial_results: bool = True


@dataclass
class PatternSettings:
    min_title_length: int = 20
    default_due_hour: int = 9
    business_end_hour: int = 17
    quantize_minutes: int = 15


@dataclass
class FallbackSettings:
    enabled: bool = True
    base_url: str = "http://localhost:11434"
    endpoint: str = "/api/generate"
    model: str = "qwen2.5:7b"
    timeout_ms: int = 500
    cold_timeout_ms: int = 15000


@dataclass
class ResidentSettings:
    socket_path: str = field(default_factory=default_socket_path)
    grace_period_seconds: float = 5.0
    max_request_bytes: int = 65536


@dataclass
class WarmerSettings:
    enabled: bool = True
    preload_top_k: int = 100
    interval_seconds: int = 0


@dataclass
class StorageSettings:
    database_url: str = "sqlite:///data/taskline.db"


@dataclass
class PipelineSettings:
    tiers: List[str] = field(default_factory=lambda: list(TIER_NAMES))


@dataclass
class LoggingSettings:
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    """Top-level settings container."""
    cache: CacheSettings = field(default_factory=CacheSettings)
    pattern: PatternSettings = field(default_factory=PatternSettings)
    fallback: FallbackSettings = field(default_factory=FallbackSettings)
    resident: ResidentSettings = field(default_factory=ResidentSettings)
    warmer: WarmerSettings = field(default_factory=WarmerSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# YAML loader
# ---------------------------------------------------------------------------

def _load_yaml(path: Path) -> Dict[str, Any]:
    """Read and parse a YAML file.  Returns ``{}`` if the file is missing."""
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    return data if isinstance(data, dict) else {}


def _apply_dict(target: object, data: Dict[str, Any]) -> None:
    """Apply *data* values onto a dataclass instance, skipping unknown keys."""
    for key, value in data.items():
        if not hasattr(target, key):
            logger.debug("Ignoring unknown config key: %s", key)
            continue
        setattr(target, key, value)


# ---------------------------------------------------------------------------
# Env-var overrides  (TASKLINE_SECTION_KEY  e.g. TASKLINE_CACHE_CAPACITY)
# ---------------------------------------------------------------------------

_SECTIONS = [
    "cache", "pattern", "fallback", "resident", "warmer",
    "storage", "pipeline", "logging",
]

_TYPE_MAP = {
    int: int,
    float: float,
    bool: lambda v: v.lower() in ("1", "true", "yes"),
    str: str,
    list: lambda v: [item.strip() for item in v.split(",") if item.strip()],
}


def _apply_env_overrides(settings: Settings) -> None:
    """Override scalar fields via ``TASKLINE_<SECTION>_<KEY>`` env vars."""
    for section_name in _SECTIONS:
        section = getattr(settings, section_name, None)
        if section is None:
            continue
        prefix = f"TASKLINE_{section_name.upper()}_"
        for key in list(vars(section)):
            env_key = prefix + key.upper()
            env_val = os.environ.get(env_key)
            if env_val is None:
                continue
            current = getattr(section, key)
            cast = _TYPE_MAP.get(type(current), str)
            try:
                setattr(section, key, cast(env_val))
                logger.debug("Env override applied: %s=%s", env_key, env_val)
            except (ValueError, TypeError):
                logger.warning("Invalid env override %s=%s", env_key, env_val)


def validate_settings(settings: Settings) -> None:
    """Reject values the pipeline cannot run with.

    Raises:
        ConfigurationError: On an out-of-range threshold, a non-positive
            capacity, or an unknown tier name.
    """
    threshold = settings.cache.fuzzy_threshold
    if not (0.0 < threshold <= 1.0):
        raise ConfigurationError(
            f"cache.fuzzy_threshold must be in (0, 1], got {threshold}"
        )
    if settings.cache.capacity < 1:
        raise ConfigurationError(
            f"cache.capacity must be >= 1, got {settings.cache.capacity}"
        )
    unknown = [t for t in settings.pipeline.tiers if t not in TIER_NAMES]
    if unknown:
        raise ConfigurationError(f"Unknown pipeline tiers: {unknown}")
    if settings.fallback.timeout_ms <= 0 or settings.fallback.cold_timeout_ms <= 0:
        raise ConfigurationError("fallback timeouts must be positive")


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Optional[Settings] = None
_lock = threading.Lock()


def get_settings(
    *,
    yaml_path: Optional[Path] = None,
    env_path: Optional[Path] = None,
    _force_reload: bool = False,
) -> Settings:
    """Return the application-wide :class:`Settings` singleton.

    On first call (or when ``_force_reload=True``) the function:

    1. Calls ``load_dotenv()`` to populate env vars from ``.env``.
    2. Reads ``config/config.yaml``.
    3. Applies ``TASKLINE_*`` environment-variable overrides.
    4. Validates the result.

    Args:
        yaml_path: Override the YAML config file path (testing).
        env_path: Override the ``.env`` file path (testing).
        _force_reload: Re-read everything even if already loaded.

    Returns:
        The global ``Settings`` instance.

    Raises:
        ConfigurationError: If the merged settings are invalid.
    """
    global _settings

    if _settings is not None and not _force_reload:
        return _settings

    with _lock:
        if _settings is not None and not _force_reload:
            return _settings

        dotenv_path = env_path or _project_path(".env")
        load_dotenv(dotenv_path, override=True)

        config_path = yaml_path or _project_path("config", "config.yaml")
        raw = _load_yaml(config_path)

        settings = Settings()
        for section_name in _SECTIONS:
            section_data = raw.get(section_name)
            if isinstance(section_data, dict):
                _apply_dict(getattr(settings, section_name), section_data)

        _apply_env_overrides(settings)
        validate_settings(settings)

        _settings = settings
        logger.info("Settings loaded from %s", config_path)
        return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for testing)."""
    global _settings
    with _lock:
        _settings = None

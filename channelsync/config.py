"""
Runtime configuration for channelsync.

Values come from the process environment (optionally seeded from a .env
file by ``channelsync.env.load_env``). CLI flags override them.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

BASE_URL_VAR = "THIRD_PARTY_BASE_URL"
DB_PATH_VAR = "CHANNELSYNC_DB"
BATCH_SIZE_VAR = "CHANNELSYNC_BATCH_SIZE"
HTTP_TIMEOUT_VAR = "CHANNELSYNC_HTTP_TIMEOUT"
LOG_LEVEL_VAR = "CHANNELSYNC_LOG_LEVEL"

DEFAULT_DB_PATH = "data/entities.db"
DEFAULT_BATCH_SIZE = 25
DEFAULT_HTTP_TIMEOUT = 15.0
DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""


@dataclass(frozen=True)
class SyncConfig:
    base_url: str = ""
    db_path: Path = Path(DEFAULT_DB_PATH)
    batch_size: int = DEFAULT_BATCH_SIZE
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL

    def with_overrides(self, **overrides) -> "SyncConfig":
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        if "db_path" in values:
            values["db_path"] = Path(values["db_path"])
        return replace(self, **values)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ConfigurationError(f"{name} must be at least 1, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _env_log_level(name: str, default: str) -> str:
    level = (os.getenv(name) or default).strip().upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"{name} must be one of {', '.join(LOG_LEVELS)}, got {level!r}")
    return level


def db_path_from_env() -> Path:
    return Path(os.getenv(DB_PATH_VAR) or DEFAULT_DB_PATH)


def load_config(base_url: Optional[str] = None) -> SyncConfig:
    """Build a SyncConfig from environment variables.

    Raises:
        ConfigurationError: a batch size, timeout or log level that does not parse
    """
    return SyncConfig(
        base_url=(base_url if base_url is not None else os.getenv(BASE_URL_VAR, "")).strip(),
        db_path=db_path_from_env(),
        batch_size=_env_int(BATCH_SIZE_VAR, DEFAULT_BATCH_SIZE),
        http_timeout=_env_float(HTTP_TIMEOUT_VAR, DEFAULT_HTTP_TIMEOUT),
        log_level=_env_log_level(LOG_LEVEL_VAR, DEFAULT_LOG_LEVEL),
    )

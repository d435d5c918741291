"""Runtime settings for litebridge connections.

Configuration is explicit and environment-driven. Every knob has a default
that is correct for the common case, so ``open(path)`` never needs a settings
object; deployments override values with ``LITEBRIDGE_*`` environment
variables or a ``.env`` file.

Features:
    - **BridgeSettings:** Engine pragmas and worker options for a connection
    - **env_prefix:** ``LITEBRIDGE_`` environment variable namespacing
    - **.env file support:** Automatic loading via pydantic-settings
    - **get_settings():** Process-wide cached instance

Examples:
    >>> from litebridge.core.settings import BridgeSettings
    >>> BridgeSettings(busy_timeout=0.5).busy_timeout
    0.5

Tags:
    settings, configuration, pydantic, environment, litebridge
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BridgeSettings(BaseSettings):
    """Per-connection engine and worker options.

    Fields
    ──────
    busy_timeout          : Seconds the engine waits on a locked database
                            before raising. 0 surfaces Busy immediately.
    statement_cache_size  : Engine-level prepared statement cache entries
    foreign_keys          : Enable ``PRAGMA foreign_keys`` on open
    worker_thread_prefix  : Name prefix of worker threads (visible in dumps)
    log_level             : Default level for ``litebridge.configure_logging``
    json_logs             : Default JSON switch for ``configure_logging`` (None = auto)
    """

    model_config = SettingsConfigDict(
        env_prefix="LITEBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ── Engine ───────────────────────────────────────────────────
    busy_timeout: float = Field(default=0.0, ge=0.0)
    statement_cache_size: int = Field(default=128, ge=0)
    foreign_keys: bool = False

    # ── Worker ───────────────────────────────────────────────────
    worker_thread_prefix: str = "litebridge"

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return level


@lru_cache(maxsize=1)
def get_settings() -> BridgeSettings:
    """Return the process-wide settings, loaded once from the environment."""
    return BridgeSettings()


__all__ = ["BridgeSettings", "get_settings"]

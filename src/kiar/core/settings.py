"""
Centralized settings for the ingestion engine.

One validated, cached settings object replaces ad-hoc environment parsing in
the server, the watchers and the CLI.  All fields can be set through
``KIAR_*`` environment variables (e.g. ``KIAR_INGEST_PATH=/data/ingest``) or
a ``.env`` file.

Examples:
    >>> from kiar.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.trigger_dir("museum-a")
    PosixPath('ingest/museum-a')
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class KiarSettings(BaseSettings):
    """Ingestion engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="KIAR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Paths ────────────────────────────────────────────────────
    ingest_path: Path = Field(
        default=Path("ingest"),
        description="Base directory; trigger files live in <ingest_path>/<participant>/",
    )
    database_path: str = Field(default="kiar.db", description="SQLite entity store")
    index_path: Path = Field(default=Path("index"), description="Directory of the file-based index")

    # ── Watchers ─────────────────────────────────────────────────
    watcher_poll_interval: float = Field(default=1.0, gt=0)
    stop_timeout: float = Field(default=10.0, ge=0, description="Seconds stop() waits for watchers")

    # ── Sink ─────────────────────────────────────────────────────
    sink_batch_size: int = Field(default=500, ge=1)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
            raise ValueError(f"Unsupported log level: {value}")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in {"console", "json"}:
            raise ValueError(f"Unsupported log format: {value}")
        return value

    def trigger_dir(self, participant: str) -> Path:
        """Directory holding the trigger and job files of a participant."""
        return self.ingest_path / participant


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, KiarSettings] = {}


def get_settings(*, reload: bool = False) -> KiarSettings:
    """Load, validate and cache a :class:`KiarSettings` instance."""
    if reload or "default" not in _settings_cache:
        _settings_cache["default"] = KiarSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, profile switches)."""
    _settings_cache.clear()

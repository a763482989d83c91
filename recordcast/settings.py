"""Environment-based settings using pydantic-settings.

Settings are read when a schema is built or when the CLI starts; the
validation engine itself never consults them, so every value that affects
casting is captured on the Schema.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["RecordcastSettings", "get_settings", "reset_settings"]


class RecordcastSettings(BaseSettings):
    """Settings loaded from RECORDCAST_* environment variables.

    Example:
        >>> # RECORDCAST_LOG_LEVEL=DEBUG
        >>> # RECORDCAST_MAX_WORKERS=8
        >>> settings = RecordcastSettings()
        >>> settings.max_workers
        8
    """

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="console", description="Log format: 'json' or 'console'")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")
    max_workers: int = Field(default=4, ge=1, le=64, description="Threads used by validate_many")
    empty_strings_as_null: bool = Field(
        default=True,
        description="Treat blank strings as null before casting",
    )
    allow_source_expressions: bool = Field(
        default=True,
        description="Allow rule expressions given as source strings in schema documents",
    )

    model_config = SettingsConfigDict(
        env_prefix="RECORDCAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is a known value."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate format is a known value."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()


_settings: Optional[RecordcastSettings] = None


def get_settings() -> RecordcastSettings:
    """Return the process settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = RecordcastSettings()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None

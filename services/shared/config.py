"""
Runtime configuration using Pydantic Settings.

Values come from environment variables, but nothing reads them at import
time: entry points call ``Settings.from_env()`` once and pass the result on.
"""
from __future__ import annotations

import logging
import typing as t

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

STORAGE_BACKENDS = ("memory", "sql")


class Settings(BaseSettings):
    """Process-wide settings, constructed once at startup."""

    model_config = SettingsConfigDict(
        frozen=True,
        extra="ignore",
        case_sensitive=False,
    )

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-5"
    oracle_timeout: float = 120.0              # seconds, per oracle request
    pdf_fallback_threshold: int = 1024 * 1024  # bytes

    # Storage
    storage_backend: str = "memory"
    database_url: str = "sqlite:///studyplan.db"

    # App Settings
    calendar_timezone: str = "UTC"             # IANA name used in provider payloads
    log_level: str = "INFO"

    @field_validator("*", mode="before")
    @classmethod
    def _blank_means_default(cls, value: t.Any, info: ValidationInfo) -> t.Any:
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return cls.model_fields[info.field_name].default
        return value

    @field_validator("storage_backend")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in STORAGE_BACKENDS:
            raise ValueError(f"must be one of {', '.join(STORAGE_BACKENDS)}, got {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def from_env(cls, environ: t.Optional[t.Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from ``os.environ``, or from an explicit mapping.

        An explicit mapping replaces the process environment entirely.

        :raises pydantic.ValidationError: If a value cannot be used.
        """
        if environ is None:
            return cls()
        values = {name: environ[name.upper()] for name in cls.model_fields if name.upper() in environ}
        return cls.model_validate(values)


def configure_logging(settings: Settings) -> None:
    """Configure root logging for the HTTP service."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
    )

# -*- coding: utf-8 -*-
import pydantic
import pytest

from services.shared.config import Settings


def test_defaults_from_empty_environment() -> None:
    settings = Settings.from_env({})
    assert settings.openai_api_key == ""
    assert settings.openai_model == "gpt-5"
    assert settings.oracle_timeout == 120.0
    assert settings.pdf_fallback_threshold == 1024 * 1024
    assert settings.storage_backend == "memory"
    assert settings.calendar_timezone == "UTC"


def test_values_from_environment() -> None:
    settings = Settings.from_env({
        "OPENAI_API_KEY": "sk-test",
        "ORACLE_TIMEOUT": "30",
        "PDF_FALLBACK_THRESHOLD": "2048",
        "STORAGE_BACKEND": "SQL",
        "DATABASE_URL": "sqlite:///tmp/plans.db",
        "LOG_LEVEL": "debug",
        "CALENDAR_TIMEZONE": "  ",
    })
    assert settings.openai_api_key == "sk-test"
    assert settings.oracle_timeout == 30.0
    assert settings.pdf_fallback_threshold == 2048
    assert settings.storage_backend == "sql"
    assert settings.database_url == "sqlite:///tmp/plans.db"
    assert settings.log_level == "DEBUG"
    assert settings.calendar_timezone == "UTC"


def test_process_environment_is_read(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_MODEL", "gpt-x")
    monkeypatch.setenv("PDF_FALLBACK_THRESHOLD", "")
    settings = Settings.from_env()
    assert settings.openai_model == "gpt-x"
    assert settings.pdf_fallback_threshold == 1024 * 1024


@pytest.mark.parametrize("env", [
    {"STORAGE_BACKEND": "redis"},
    {"ORACLE_TIMEOUT": "soon"},
    {"PDF_FALLBACK_THRESHOLD": "1.5 MB"},
])
def test_invalid_values_fail_fast(env) -> None:
    with pytest.raises(pydantic.ValidationError):
        Settings.from_env(env)


def test_settings_are_validated_and_frozen() -> None:
    with pytest.raises(pydantic.ValidationError):
        Settings(storage_backend="redis")
    settings = Settings(storage_backend="SQL", database_url="sqlite://")
    assert settings.storage_backend == "sql"
    with pytest.raises(pydantic.ValidationError):
        settings.log_level = "DEBUG"

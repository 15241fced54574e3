"""
Test conftest — isolate CRONWATCH_* environment variables and .env loading
so settings tests are not affected by the developer's or CI environment.
"""
import os

import pytest


@pytest.fixture(autouse=True)
def _clear_cronwatch_env(monkeypatch):
    """Remove CRONWATCH_* env vars for every test and disable .env loading,
    so Settings() sees only defaults unless the test provides values."""
    for var in list(os.environ):
        if var.upper().startswith("CRONWATCH_"):
            monkeypatch.delenv(var, raising=False)

    import cronwatch.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_prefix="CRONWATCH_",
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)

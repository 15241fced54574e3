"""
config/settings.py — cronwatch Runtime Settings

Merges cronwatch.yaml (daemon settings) with CRONWATCH_* environment
variables and .env. All fields are validated and typed by pydantic.

These are the daemon's own knobs (where the task file lives, timeouts,
logging). The task file itself is a separate JSON document handled by
cronwatch.tasks.schema and watched for changes at runtime.

  - Field validators reject bad values at parse time
  - validate_all() performs cross-field startup validation and raises
    ConfigError listing every problem found
  - load_settings() respects CRONWATCH_CONFIG as a fallback when no explicit
    config_path argument is given
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cronwatch.exceptions import ConfigError


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class SchedulerConfig(BaseModel):
    tasks_file: str = "./cronwatch.json"
    poll_interval_seconds: float = 1.0

    @field_validator("poll_interval_seconds")
    @classmethod
    def _positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("scheduler.poll_interval_seconds must be > 0")
        return v


class ActionsConfig(BaseModel):
    """Transport limits for ping and exec actions."""
    http_timeout_seconds: float = 30.0
    exec_timeout_seconds: float = 600.0  # 0 = no limit

    @field_validator("http_timeout_seconds")
    @classmethod
    def _positive_http_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("actions.http_timeout_seconds must be > 0")
        return v

    @field_validator("exec_timeout_seconds")
    @classmethod
    def _non_negative_exec_timeout(cls, v: float) -> float:
        if v < 0:
            raise ValueError("actions.exec_timeout_seconds must be >= 0 (0 disables it)")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 10
    backup_count: int = 5
    console_output: bool = True
    json_format: bool | None = None

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper

    @field_validator("max_file_size_mb", "backup_count")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("logging sizes and counts must be >= 0")
        return v


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    cronwatch runtime settings.

    Sources: cronwatch.yaml sections, CRONWATCH_* environment variables
    (nested with "__", e.g. CRONWATCH_LOGGING__LEVEL=DEBUG), .env, defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="CRONWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    actions: ActionsConfig = Field(default_factory=ActionsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # -- Convenience properties ----------------------------------------------

    @property
    def tasks_path(self) -> Path:
        return Path(self.scheduler.tasks_file).expanduser()

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir).expanduser()

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Field validators catch single-value problems at parse time; this
        catches what only shows up once the values are combined or resolved
        against the filesystem.
        """
        errors: list[str] = []

        if not self.scheduler.tasks_file.strip():
            errors.append("scheduler.tasks_file must not be empty.")
        elif self.tasks_path.exists() and self.tasks_path.is_dir():
            errors.append(
                f"scheduler.tasks_file '{self.scheduler.tasks_file}' is a directory. "
                f"Point it at a JSON file (it is created on first run)."
            )

        if self.log_dir.exists() and not self.log_dir.is_dir():
            errors.append(f"logging.log_dir '{self.logging.log_dir}' exists and is not a directory.")

        timeout = self.actions.exec_timeout_seconds
        if 0 < timeout < 1:
            errors.append(
                f"actions.exec_timeout_seconds={timeout} is below the 1s scheduling "
                f"resolution. Use 0 to disable it or a value >= 1."
            )

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\ncronwatch startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader
# ─────────────────────────────────────────────────────────────────────────────

_KNOWN_SECTIONS = {"scheduler", "actions", "logging"}


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the settings file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. CRONWATCH_CONFIG environment variable
      3. Default: config/cronwatch.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("CRONWATCH_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/cronwatch.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings by merging the YAML file with environment variables."""
    yaml_data = _load_yaml(_resolve_config_path(config_path))
    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}
    return Settings(**init_kwargs)

"""
tests/unit/test_settings.py — daemon settings

Covers:
  - defaults load cleanly
  - field validators: log level, timeouts, poll interval
  - validate_all() raises ConfigError with a numbered list
  - load_settings(): YAML sections, unknown sections ignored, non-mapping
    top level rejected
  - CRONWATCH_CONFIG is respected; an explicit path takes priority
  - CRONWATCH_* environment overrides with "__" nesting
"""

from __future__ import annotations

import textwrap

import pytest
from pydantic import ValidationError

from cronwatch.config.settings import (
    ActionsConfig,
    LoggingConfig,
    SchedulerConfig,
    Settings,
    load_settings,
)
from cronwatch.exceptions import ConfigError


def _write_yaml(path, body: str):
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


# ─────────────────────────────────────────────────────────────────────────────
# Field validation
# ─────────────────────────────────────────────────────────────────────────────

class TestDefaults:

    def test_defaults(self):
        s = Settings()
        assert s.scheduler.tasks_file == "./cronwatch.json"
        assert s.scheduler.poll_interval_seconds == 1.0
        assert s.actions.http_timeout_seconds == 30.0
        assert s.actions.exec_timeout_seconds == 600.0
        assert s.logging.level == "INFO"
        assert s.logging.json_format is None

    def test_tasks_path_expands_user(self):
        s = Settings(scheduler={"tasks_file": "~/tasks.json"})
        assert "~" not in str(s.tasks_path)


class TestFieldValidators:

    def test_log_level_normalised(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError, match="logging.level"):
            LoggingConfig(level="LOUD")

    @pytest.mark.parametrize("value", [0, -1])
    def test_http_timeout_must_be_positive(self, value):
        with pytest.raises(ValidationError):
            ActionsConfig(http_timeout_seconds=value)

    def test_exec_timeout_zero_allowed(self):
        assert ActionsConfig(exec_timeout_seconds=0).exec_timeout_seconds == 0

    def test_exec_timeout_negative_rejected(self):
        with pytest.raises(ValidationError):
            ActionsConfig(exec_timeout_seconds=-5)

    def test_poll_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(poll_interval_seconds=0)

    def test_negative_backup_count_rejected(self):
        with pytest.raises(ValidationError):
            LoggingConfig(backup_count=-1)


# ─────────────────────────────────────────────────────────────────────────────
# validate_all()
# ─────────────────────────────────────────────────────────────────────────────

class TestValidateAll:

    def test_clean_settings_pass(self, tmp_path):
        Settings(
            scheduler={"tasks_file": str(tmp_path / "tasks.json")},
            logging={"log_dir": str(tmp_path / "logs")},
        ).validate_all()

    def test_empty_tasks_file(self):
        with pytest.raises(ConfigError, match="must not be empty"):
            Settings(scheduler={"tasks_file": "  "}).validate_all()

    def test_tasks_file_is_directory(self, tmp_path):
        with pytest.raises(ConfigError, match="is a directory"):
            Settings(scheduler={"tasks_file": str(tmp_path)}).validate_all()

    def test_log_dir_is_file(self, tmp_path):
        not_a_dir = tmp_path / "logs"
        not_a_dir.write_text("")
        with pytest.raises(ConfigError, match="not a directory"):
            Settings(logging={"log_dir": str(not_a_dir)}).validate_all()

    def test_sub_second_exec_timeout(self, tmp_path):
        with pytest.raises(ConfigError, match="exec_timeout_seconds"):
            Settings(
                scheduler={"tasks_file": str(tmp_path / "t.json")},
                actions={"exec_timeout_seconds": 0.5},
            ).validate_all()

    def test_problems_are_numbered(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            Settings(
                scheduler={"tasks_file": ""},
                actions={"exec_timeout_seconds": 0.5},
            ).validate_all()
        message = str(exc_info.value)
        assert "2 configuration problem(s)" in message
        assert "  1. " in message
        assert "  2. " in message


# ─────────────────────────────────────────────────────────────────────────────
# load_settings()
# ─────────────────────────────────────────────────────────────────────────────

class TestLoadSettings:

    def test_missing_file_means_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert load_settings().scheduler.tasks_file == "./cronwatch.json"

    def test_yaml_sections(self, tmp_path):
        cfg = _write_yaml(tmp_path / "cronwatch.yaml", """
            scheduler:
              tasks_file: /etc/cronwatch/tasks.json
              poll_interval_seconds: 2.5
            actions:
              exec_timeout_seconds: 0
            logging:
              level: warning
            agent:
              ignored: true
        """)
        s = load_settings(cfg)
        assert s.scheduler.tasks_file == "/etc/cronwatch/tasks.json"
        assert s.scheduler.poll_interval_seconds == 2.5
        assert s.actions.exec_timeout_seconds == 0
        assert s.logging.level == "WARNING"

    def test_empty_yaml_means_defaults(self, tmp_path):
        cfg = _write_yaml(tmp_path / "cronwatch.yaml", "")
        assert load_settings(cfg).logging.level == "INFO"

    def test_non_mapping_rejected(self, tmp_path):
        cfg = _write_yaml(tmp_path / "cronwatch.yaml", "- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(cfg)

    def test_invalid_value_raises_validation_error(self, tmp_path):
        cfg = _write_yaml(tmp_path / "cronwatch.yaml", """
            actions:
              http_timeout_seconds: 0
        """)
        with pytest.raises(ValidationError):
            load_settings(cfg)

    def test_env_var_config_path(self, tmp_path, monkeypatch):
        cfg = _write_yaml(tmp_path / "from_env.yaml", """
            logging:
              level: ERROR
        """)
        monkeypatch.setenv("CRONWATCH_CONFIG", str(cfg))
        assert load_settings().logging.level == "ERROR"

    def test_explicit_path_beats_env_var(self, tmp_path, monkeypatch):
        env_cfg = _write_yaml(tmp_path / "env.yaml", "logging:\n  level: ERROR\n")
        arg_cfg = _write_yaml(tmp_path / "arg.yaml", "logging:\n  level: DEBUG\n")
        monkeypatch.setenv("CRONWATCH_CONFIG", str(env_cfg))
        assert load_settings(arg_cfg).logging.level == "DEBUG"

    def test_environment_override(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("CRONWATCH_LOGGING__LEVEL", "DEBUG")
        monkeypatch.setenv("CRONWATCH_ACTIONS__HTTP_TIMEOUT_SECONDS", "5")
        s = load_settings()
        assert s.logging.level == "DEBUG"
        assert s.actions.http_timeout_seconds == 5.0

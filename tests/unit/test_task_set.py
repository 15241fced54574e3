"""
tests/unit/test_task_set.py — Task file schema and TaskSet construction

Covers:
  - AppConfig.decode(): canonical and lower-case keys, null Args/Tasks,
    malformed JSON and wrong shapes raise ConfigDecodeError
  - AppConfig.encode(): canonical key names
  - TaskSet.from_config(): partition into ordinary/error tasks in declaration
    order, all-or-nothing validation (kind, arity, schedule)
  - to_config() reproduces the records it was built from
"""

from __future__ import annotations

import json

import pytest

from cronwatch.exceptions import (
    ConfigDecodeError,
    InvalidArgumentsError,
    TaskValidationError,
    TriggerParseError,
    UnknownActionKindError,
)
from cronwatch.tasks.schema import SAMPLE_CONFIG, AppConfig, TaskRecord
from cronwatch.tasks.task_set import TaskSet


def _config(*records: tuple[str, str, list[str]], utc: bool = False) -> AppConfig:
    return AppConfig(
        utc=utc,
        tasks=[TaskRecord(at=at, do=do, args=args) for at, do, args in records],
    )


# ─────────────────────────────────────────────────────────────────────────────
# Decode / encode
# ─────────────────────────────────────────────────────────────────────────────

class TestDecode:

    def test_canonical_keys(self):
        raw = json.dumps({
            "UTC": True,
            "Tasks": [{"At": "@hourly", "Do": "ping", "Args": ["http://x/", "OK"]}],
        })
        config = AppConfig.decode(raw)
        assert config.utc is True
        assert config.tasks[0].at == "@hourly"
        assert config.tasks[0].do == "ping"
        assert config.tasks[0].args == ["http://x/", "OK"]

    def test_lower_case_keys(self):
        raw = '{"utc": true, "tasks": [{"at": "@daily", "do": "exec", "args": ["true"]}]}'
        config = AppConfig.decode(raw)
        assert config.utc is True
        assert config.tasks[0].do == "exec"

    def test_defaults_when_keys_absent(self):
        config = AppConfig.decode("{}")
        assert config.utc is False
        assert config.tasks == []

    def test_null_args_and_tasks(self):
        assert AppConfig.decode('{"Tasks": null}').tasks == []
        config = AppConfig.decode('{"Tasks": [{"At": "@hourly", "Do": "exec", "Args": null}]}')
        assert config.tasks[0].args == []

    @pytest.mark.parametrize("raw", [
        "",
        "{",
        "[]",
        '{"Tasks": {"At": "@hourly"}}',
        '{"Tasks": [{"At": "@hourly"}]}',
        '{"Tasks": [{"At": "@hourly", "Do": "exec", "Args": "true"}]}',
    ])
    def test_malformed_input_raises_decode_error(self, raw):
        with pytest.raises(ConfigDecodeError, match="invalid task file"):
            AppConfig.decode(raw)

    def test_encode_uses_canonical_keys(self):
        data = json.loads(SAMPLE_CONFIG.encode())
        assert set(data) == {"UTC", "Tasks"}
        assert set(data["Tasks"][0]) == {"At", "Do", "Args"}
        assert data["Tasks"][0]["At"] == "@error"


# ─────────────────────────────────────────────────────────────────────────────
# TaskSet.from_config()
# ─────────────────────────────────────────────────────────────────────────────

class TestFromConfig:

    def test_partitions_in_declaration_order(self):
        config = _config(
            ("@hourly", "ping", ["http://x/a", "OK"]),
            ("@error", "ping", ["http://x/err1", "OK"]),
            ("*/5 * * * *", "exec", ["true"]),
            ("@error", "exec", ["notify", "--now"]),
        )
        task_set = TaskSet.from_config(config)
        assert [t.trigger for t in task_set.ordinary_tasks] == ["@hourly", "*/5 * * * *"]
        assert [t.args for t in task_set.error_tasks] == [
            ("http://x/err1", "OK"),
            ("notify", "--now"),
        ]
        assert len(task_set.tasks) == 4

    def test_utc_flag_carried(self):
        assert TaskSet.from_config(_config(utc=True)).use_utc is True
        assert TaskSet.from_config(_config()).use_utc is False

    def test_empty_set_is_valid(self):
        task_set = TaskSet.from_config(_config())
        assert task_set.tasks == ()

    def test_sample_config_is_valid(self):
        task_set = TaskSet.from_config(SAMPLE_CONFIG)
        assert len(task_set.ordinary_tasks) == 2
        assert len(task_set.error_tasks) == 1

    @pytest.mark.parametrize("record,error_type", [
        (("@hourly", "ping", ["http://x/"]), InvalidArgumentsError),
        (("@hourly", "exec", []), InvalidArgumentsError),
        (("@hourly", "reboot", ["now"]), UnknownActionKindError),
        (("every hour", "exec", ["true"]), TriggerParseError),
        (("@error", "ping", []), InvalidArgumentsError),
    ])
    def test_one_bad_task_rejects_the_set(self, record, error_type):
        config = _config(
            ("@hourly", "ping", ["http://x/a", "OK"]),
            record,
        )
        with pytest.raises(error_type):
            TaskSet.from_config(config)

    def test_first_problem_is_reported(self):
        config = _config(
            ("@hourly", "mail", ["x"]),
            ("bad", "exec", ["true"]),
        )
        with pytest.raises(TaskValidationError) as exc_info:
            TaskSet.from_config(config)
        assert isinstance(exc_info.value, UnknownActionKindError)

    def test_fresh_tasks_per_build(self):
        a = TaskSet.from_config(SAMPLE_CONFIG)
        b = TaskSet.from_config(SAMPLE_CONFIG)
        assert all(x is not y for x, y in zip(a.tasks, b.tasks))

    def test_to_config_reproduces_records(self):
        assert TaskSet.from_config(SAMPLE_CONFIG).to_config() == SAMPLE_CONFIG

    def test_round_trip_through_json(self):
        original = TaskSet.from_config(_config(
            ("@error", "exec", ["notify", "--channel", "ops"]),
            ("0 5 * * * *", "ping", ["http://x/here", "OK"]),
            ("@every 1h30m", "exec", ["/usr/local/bin/backup", "--quiet", "/srv"]),
            ("*/10 * * * *", "exec", ["true"]),
            utc=True,
        ))

        raw = original.to_config().encode()
        restored = TaskSet.from_config(AppConfig.decode(raw))

        assert restored.use_utc is True
        assert [(t.trigger, t.kind, t.args) for t in restored.tasks] == [
            (t.trigger, t.kind, t.args) for t in original.tasks
        ]
        assert restored.tasks[2].args == ("/usr/local/bin/backup", "--quiet", "/srv")
        assert [t.trigger for t in restored.error_tasks] == ["@error"]

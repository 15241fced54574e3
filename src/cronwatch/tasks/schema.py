"""
tasks/schema.py — Task file schema

The task file is a JSON document:

    {
      "UTC": false,
      "Tasks": [
        {"At": "@error",      "Do": "ping", "Args": ["http://example.com/error", "OK"]},
        {"At": "0 5 * * * *", "Do": "ping", "Args": ["http://example.com/here", "OK"]},
        {"At": "@hourly",     "Do": "exec", "Args": ["/usr/local/bin/backup", "--quiet"]}
      ]
    }

Keys are accepted as written above or in lower case. The models only check
shape; kind/arity and schedule checks belong to TaskSet.from_config().
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from cronwatch.exceptions import ConfigDecodeError


class TaskRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    at: str = Field(validation_alias=AliasChoices("At", "at"), serialization_alias="At")
    do: str = Field(validation_alias=AliasChoices("Do", "do"), serialization_alias="Do")
    args: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("Args", "args"),
        serialization_alias="Args",
    )

    @field_validator("args", mode="before")
    @classmethod
    def _null_args(cls, v: Any) -> Any:
        return [] if v is None else v


class AppConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    utc: bool = Field(
        default=False,
        validation_alias=AliasChoices("UTC", "utc"),
        serialization_alias="UTC",
    )
    tasks: list[TaskRecord] = Field(
        default_factory=list,
        validation_alias=AliasChoices("Tasks", "tasks"),
        serialization_alias="Tasks",
    )

    @field_validator("tasks", mode="before")
    @classmethod
    def _null_tasks(cls, v: Any) -> Any:
        return [] if v is None else v

    @classmethod
    def decode(cls, raw: bytes | str) -> "AppConfig":
        """Decode task-file JSON. Raises ConfigDecodeError on any problem."""
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '?'}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigDecodeError(f"invalid task file: {problems}") from e

    def encode(self) -> bytes:
        return self.model_dump_json(by_alias=True, indent=2).encode("utf-8") + b"\n"


SAMPLE_CONFIG = AppConfig(
    utc=False,
    tasks=[
        TaskRecord(at="@error", do="ping", args=["http://hitthisurl.com/error", "OK"]),
        TaskRecord(at="0 5 * * * *", do="ping", args=["http://hitthisurl.com/here", "OK"]),
        TaskRecord(at="@every 1h30m", do="ping", args=["http://hitthisurl.com/here", "OK"]),
    ],
)

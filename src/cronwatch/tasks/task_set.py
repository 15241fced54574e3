"""
tasks/task_set.py — TaskSet

The validated, immutable collection of tasks for one reload generation.
Construction is all-or-nothing: from_config() either returns a TaskSet in
which every task passed verify() and every ordinary trigger parsed, or
raises without producing anything.
"""

from __future__ import annotations

from dataclasses import dataclass

from cronwatch.exceptions import TaskValidationError
from cronwatch.observability.logger import get_logger
from cronwatch.scheduler.triggers import parse_trigger
from cronwatch.tasks.schema import AppConfig, TaskRecord
from cronwatch.tasks.task import Task

log = get_logger(__name__)


@dataclass(frozen=True)
class TaskSet:
    use_utc: bool
    tasks: tuple[Task, ...]

    @property
    def ordinary_tasks(self) -> tuple[Task, ...]:
        return tuple(t for t in self.tasks if not t.is_error_task)

    @property
    def error_tasks(self) -> tuple[Task, ...]:
        return tuple(t for t in self.tasks if t.is_error_task)

    @classmethod
    def from_config(cls, config: AppConfig) -> "TaskSet":
        """
        Build and validate a candidate set.

        Raises the first TaskValidationError found (InvalidArgumentsError,
        UnknownActionKindError or TriggerParseError); the caller keeps
        whatever set it already had.
        """
        tasks = tuple(
            Task(trigger=rec.at, kind=rec.do, args=tuple(rec.args))
            for rec in config.tasks
        )
        for index, task in enumerate(tasks):
            try:
                task.verify()
                if not task.is_error_task:
                    parse_trigger(task.trigger)
            except TaskValidationError as e:
                log.debug("task_set.invalid_task", index=index, task=str(task), error=str(e))
                raise
        return cls(use_utc=config.utc, tasks=tasks)

    def to_config(self) -> AppConfig:
        return AppConfig(
            utc=self.use_utc,
            tasks=[TaskRecord(at=t.trigger, do=t.kind, args=list(t.args)) for t in self.tasks],
        )

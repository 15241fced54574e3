"""
scheduler/scheduler.py — Scheduler (reload and failure escalation)

Owns the active generation: the installed TaskSet, the Schedule that arms
its ordinary tasks, and the error-task tuple used by that generation's
failure callback.

Design
------
* Validate before commit: a candidate TaskSet is built completely off to the
  side while the current generation keeps running. Any invalid task rejects
  the whole candidate and nothing is stopped.
* Atomic swap: jobs for the new Schedule are registered first; the old
  Schedule is then disarmed (watchers cancelled and awaited), the new
  generation is published in a single assignment, and only then armed.
  Old and new triggers are never armed together.
* Each fire is bound to the generation it was armed by, so its failure
  callback always sees that generation's error tasks.
* Error tasks have no trigger. They run only when an ordinary task fails,
  sequentially in declaration order; their own failures are logged and
  never escalated again.
* Stopping disarms triggers but never cancels runs in flight; wait() drains
  them.

States::

    stopped ──reload ok──▶ active ──reload──▶ reloading ──ok/rejected──▶ active
       ▲                                                                   │
       └──────────────────────────────── stop() ◀─────────────────────────┘
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from datetime import timezone, tzinfo
from enum import StrEnum
from typing import Any, Optional

from cronwatch import __version__
from cronwatch.exceptions import (
    CronwatchError,
    TaskValidationError,
    TriggerParseError,
    TriggerRegistrationError,
)
from cronwatch.observability.logger import bind_generation, get_logger
from cronwatch.scheduler.executor import Executor
from cronwatch.scheduler.triggers import Schedule
from cronwatch.tasks.schema import AppConfig
from cronwatch.tasks.task import Task
from cronwatch.tasks.task_set import TaskSet

log = get_logger(__name__)


class SchedulerState(StrEnum):
    STOPPED = "stopped"
    RELOADING = "reloading"
    ACTIVE = "active"


@dataclass(frozen=True)
class Generation:
    """One installed TaskSet together with its armed Schedule."""
    number: int
    task_set: TaskSet
    schedule: Schedule
    error_tasks: tuple[Task, ...]


class Scheduler:
    """
    Lifecycle::

        scheduler = Scheduler(Executor(ActionRunner()))
        await scheduler.reload(config)   # first successful load arms triggers
        await scheduler.reload(config2)  # validated swap
        await scheduler.stop()           # disarm
        await scheduler.wait()           # drain in-flight runs

    `local_tz` is the zone used when a TaskSet has UTC=false; None means the
    host's local zone.
    """

    def __init__(self, executor: Executor, *, local_tz: Optional[tzinfo] = None) -> None:
        self._executor = executor
        self._local_tz = local_tz
        self._state = SchedulerState.STOPPED
        self._active: Optional[Generation] = None
        self._retired: list[Schedule] = []
        self._generations = 0

    # ── Introspection ─────────────────────────────────────────────────────────

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def active(self) -> Optional[TaskSet]:
        return self._active.task_set if self._active else None

    @property
    def generation(self) -> int:
        return self._active.number if self._active else 0

    @property
    def error_tasks(self) -> tuple[Task, ...]:
        return self._active.error_tasks if self._active else ()

    def list_tasks(self) -> list[dict[str, Any]]:
        """Status summary of every task in the active set."""
        if self._active is None:
            return []
        next_fires = {name: nxt for name, _, nxt in self._active.schedule.entries()}
        result = []
        for task in self._active.task_set.tasks:
            nxt = next_fires.get(str(task)) if not task.is_error_task else None
            result.append({
                "task": str(task),
                "kind": task.kind,
                "trigger": task.trigger,
                "error_task": task.is_error_task,
                "running": task.running,
                "next_fire": nxt.isoformat() if nxt else None,
            })
        return result

    # ── Reload ────────────────────────────────────────────────────────────────

    async def reload(self, config: AppConfig) -> bool:
        """
        Validate `config` and, only if every task is valid, swap it in.

        Returns False (and leaves the current generation untouched) when the
        candidate is rejected. Raises TriggerRegistrationError if a validated
        expression is refused at install time.
        """
        previous = self._state
        self._state = SchedulerState.RELOADING
        try:
            task_set = TaskSet.from_config(config)
        except TaskValidationError as e:
            self._state = previous
            log.warning(
                "scheduler.reload_rejected",
                error=str(e),
                error_type=type(e).__name__,
                kept_generation=self.generation,
            )
            return False

        try:
            await self.install(task_set)
        except BaseException:
            self._state = previous if self._active is None else SchedulerState.ACTIVE
            raise
        return True

    async def install(self, task_set: TaskSet) -> None:
        """Arm `task_set` in place of the current generation."""
        number = self._generations + 1
        schedule = Schedule(tz=timezone.utc if task_set.use_utc else self._local_tz)
        generation = Generation(
            number=number,
            task_set=task_set,
            schedule=schedule,
            error_tasks=task_set.error_tasks,
        )

        for task in task_set.ordinary_tasks:
            try:
                schedule.add_job(
                    task.trigger,
                    functools.partial(self._fire, generation, task),
                    name=str(task),
                )
            except TriggerParseError as e:
                log.critical("scheduler.job_registration_failed", task=str(task), error=str(e))
                raise TriggerRegistrationError(
                    f"Error from adding the job: {task}: {e}"
                ) from e

        old = self._active
        if old is not None:
            await old.schedule.stop()
            self._retire(old.schedule)

        self._active = generation
        self._generations = number
        bind_generation(number)
        schedule.start()
        self._state = SchedulerState.ACTIVE

        log.info(
            "scheduler.config_loaded",
            version=__version__,
            generation=number,
            utc=task_set.use_utc,
            tasks=len(task_set.ordinary_tasks),
            error_tasks=len(generation.error_tasks),
        )

    # ── Shutdown ──────────────────────────────────────────────────────────────

    async def stop(self) -> None:
        """Disarm all triggers. Runs already in flight continue."""
        if self._active is not None:
            await self._active.schedule.stop()
            self._retire(self._active.schedule)
            self._active = None
        self._state = SchedulerState.STOPPED
        log.info("scheduler.stopped")

    async def wait(self) -> None:
        """Wait for runs spawned by the active and all retired schedules."""
        schedules = list(self._retired)
        if self._active is not None:
            schedules.append(self._active.schedule)
        for schedule in schedules:
            await schedule.wait()
        self._retired = [s for s in self._retired if s.busy]

    def _retire(self, schedule: Schedule) -> None:
        """Keep a disarmed schedule only while wait() still has runs to drain."""
        self._retired = [s for s in self._retired if s.busy]
        if schedule.busy:
            self._retired.append(schedule)

    # ── Fire / escalate ───────────────────────────────────────────────────────

    async def _fire(self, generation: Generation, task: Task) -> None:
        await self._executor.execute(task, functools.partial(self._escalate, generation))

    async def _escalate(self, generation: Generation, task: Task, error: CronwatchError) -> None:
        """Failure callback bound to one generation."""
        log.warning(
            "task.failed",
            task=str(task),
            kind=task.kind,
            trigger=task.trigger,
            error=str(error),
            error_type=type(error).__name__,
            generation=generation.number,
        )
        if task.is_error_task:
            return
        for error_task in generation.error_tasks:
            await self._executor.execute(
                error_task, functools.partial(self._escalate, generation)
            )

"""
scheduler/executor.py — single-flight task execution

Executor.execute() runs one task through the ActionRunner:

* If the task is already running, the fire is reported as a failure
  (AlreadyRunningError) and the action is not started. Overlap shows up
  in the logs instead of piling up silently.
* Otherwise the task guard is held for the duration of the action and
  released on every exit path. A failure is reported to `on_failure`
  exactly once, after the guard is released.
* execute() never raises for action failures.
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable

from cronwatch.exceptions import ActionError, AlreadyRunningError, CronwatchError
from cronwatch.observability.logger import get_logger
from cronwatch.tasks.actions import ActionRunner
from cronwatch.tasks.task import Task

log = get_logger(__name__)

FailureCallback = Callable[[Task, CronwatchError], Awaitable[None]]


class Executor:

    def __init__(self, actions: ActionRunner) -> None:
        self._actions = actions

    @property
    def actions(self) -> ActionRunner:
        return self._actions

    async def execute(self, task: Task, on_failure: FailureCallback) -> bool:
        """Run task once. Returns True on success, False otherwise."""
        guard = task.guard
        # check-and-acquire with no await in between
        if guard.locked():
            await on_failure(task, AlreadyRunningError())
            return False

        error: CronwatchError | None = None
        started = time.monotonic()
        async with guard:
            log.debug("task.start", task=str(task))
            try:
                await task.run(self._actions)
            except CronwatchError as e:
                error = e
            except Exception as e:
                error = ActionError(f"{type(e).__name__}: {e}")
                log.error("task.unexpected_error", task=str(task), error=str(e), exc_info=True)

        duration_s = round(time.monotonic() - started, 3)
        if error is None:
            log.debug("task.complete", task=str(task), duration_s=duration_s)
            return True

        log.debug("task.error", task=str(task), duration_s=duration_s, error_type=type(error).__name__)
        await on_failure(task, error)
        return False

"""
tasks/task.py — Task

One schedule entry: a trigger expression (or the @error sentinel), an action
kind, its arguments, and a per-task guard that keeps two executions of the
same task from overlapping.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from cronwatch.exceptions import InvalidArgumentsError, UnknownActionKindError

if TYPE_CHECKING:
    from cronwatch.tasks.actions import ActionRunner

ERROR_TRIGGER = "@error"


class ActionKind(StrEnum):
    PING = "ping"
    EXEC = "exec"


@dataclass(frozen=True, eq=False)
class Task:
    """
    trigger   Schedule expression, or "@error" for an error task.
    kind      Action kind ("ping" | "exec"); kept as the raw configured string
              so unknown values survive until verify() rejects them.
    args      Action arguments.
    """
    trigger: str
    kind: str
    args: tuple[str, ...] = ()
    _guard: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    @property
    def is_error_task(self) -> bool:
        return self.trigger == ERROR_TRIGGER

    @property
    def running(self) -> bool:
        """True while an execution of this task is in flight."""
        return self._guard.locked()

    @property
    def guard(self) -> asyncio.Lock:
        return self._guard

    def verify(self) -> None:
        """Check kind and argument arity. Pure; raises on the first problem."""
        if self.kind == ActionKind.PING:
            if len(self.args) != 2:
                raise InvalidArgumentsError(
                    '"ping" command must have two arguments: Url, and expected result.'
                )
        elif self.kind == ActionKind.EXEC:
            if len(self.args) == 0:
                raise InvalidArgumentsError(
                    '"exec" command must have at least one Args: CMD [ARGS].'
                )
        else:
            raise UnknownActionKindError(self.kind)

    async def run(self, actions: ActionRunner) -> None:
        """Perform the action once. Raises an ActionError subclass on failure."""
        if self.kind == ActionKind.PING:
            await actions.ping(self.args[0], self.args[1])
        elif self.kind == ActionKind.EXEC:
            await actions.exec(self.args[0], self.args[1:])
        else:
            # verify() keeps these out of an installed set
            raise UnknownActionKindError(self.kind)

    def __str__(self) -> str:
        return f"{self.kind} @ {self.trigger} <{list(self.args)}>"

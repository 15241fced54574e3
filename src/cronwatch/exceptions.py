"""
exceptions.py — cronwatch Unified Error Hierarchy

All cronwatch-specific exceptions live here. Every layer raises typed
subclasses of CronwatchError, never bare Exception.

Import from here, not from individual modules:
    from cronwatch.exceptions import TriggerParseError, ActionExecError

Hierarchy:
    CronwatchError
    ├── ConfigError
    ├── TaskValidationError
    │   ├── InvalidArgumentsError
    │   ├── UnknownActionKindError
    │   └── TriggerParseError
    ├── ConfigDecodeError
    ├── ActionError
    │   ├── AlreadyRunningError
    │   ├── ActionTransportError
    │   ├── ActionMismatchError
    │   └── ActionExecError
    └── TriggerRegistrationError

Validation and decode errors reject a reload and are only logged.
Action errors travel through the scheduler's failure callback.
TriggerRegistrationError is the single fatal condition.
"""

from __future__ import annotations

from typing import Optional


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class CronwatchError(Exception):
    """Base class for all cronwatch exceptions."""


class ConfigError(CronwatchError):
    """Raised by Settings.validate_all() when daemon settings are inconsistent."""


# ─────────────────────────────────────────────────────────────────────────────
# Task validation (reload-time)
# ─────────────────────────────────────────────────────────────────────────────

class TaskValidationError(CronwatchError):
    """Base for problems that keep a candidate task set from being installed."""


class InvalidArgumentsError(TaskValidationError):
    """Task arguments do not satisfy the arity rule of its action kind."""


class UnknownActionKindError(TaskValidationError):
    """The task's "Do" value is not a known action kind."""

    def __init__(self, kind: str, message: str = "") -> None:
        self.kind = kind
        super().__init__(message or f'unknown "Do": {kind}')


class TriggerParseError(TaskValidationError):
    """A schedule expression could not be parsed by the trigger engine."""

    def __init__(self, expr: str, reason: str = "") -> None:
        self.expr = expr
        self.reason = reason
        super().__init__(f"bad schedule <{expr}>" + (f": {reason}" if reason else ""))


class ConfigDecodeError(CronwatchError):
    """The task configuration file is unreadable or does not match the schema."""


# ─────────────────────────────────────────────────────────────────────────────
# Action errors (run-time, routed through the failure callback)
# ─────────────────────────────────────────────────────────────────────────────

class ActionError(CronwatchError):
    """Base for failures of a single task execution."""


class AlreadyRunningError(ActionError):
    """A trigger fired while the previous execution of the same task was in flight."""

    def __init__(self, message: str = "Task already running.") -> None:
        super().__init__(message)


class ActionTransportError(ActionError):
    """The ping request failed at the network level or its body was unreadable."""


class ActionMismatchError(ActionError):
    """The ping response body differs from the expected body."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f'Expected "{expected}", got: "{actual}".')


class ActionExecError(ActionError):
    """The command could not be spawned, timed out, or exited non-zero."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        output: str = "",
    ) -> None:
        self.returncode = returncode
        self.output = output
        super().__init__(message)


# ─────────────────────────────────────────────────────────────────────────────
# Fatal
# ─────────────────────────────────────────────────────────────────────────────

class TriggerRegistrationError(CronwatchError):
    """An expression that passed validation was rejected at install time."""


__all__ = [
    "CronwatchError",
    "ConfigError",
    "TaskValidationError",
    "InvalidArgumentsError",
    "UnknownActionKindError",
    "TriggerParseError",
    "ConfigDecodeError",
    "ActionError",
    "AlreadyRunningError",
    "ActionTransportError",
    "ActionMismatchError",
    "ActionExecError",
    "TriggerRegistrationError",
]

"""
scheduler/triggers.py — Trigger engine

Parses schedule expressions and arms them as asyncio watcher loops.

Grammar
-------
* 5-field cron:              "*/5 * * * *"
* 6-field cron, seconds first: "0 5 * * * *"   (second 0 of minute 5, hourly)
* named shortcuts:           @yearly @annually @monthly @weekly @daily
                             @midnight @hourly
* fixed interval:            "@every 1h30m"  (Go-style units ns us µs ms s m h,
                             truncated to whole seconds, minimum 1s)

Cron arithmetic is delegated to croniter. A Schedule owns one watcher task
per job; each fire spawns its own asyncio task so a slow run never delays
the next computation. Stopping a Schedule cancels the watchers only;
runs already in flight are left to finish and can be awaited with wait().
"""

from __future__ import annotations

import asyncio
import functools
import os
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from cronwatch.exceptions import TriggerParseError
from cronwatch.observability.logger import get_logger

log = get_logger(__name__)

Job = Callable[[], Awaitable[None]]

_SHORTCUTS: dict[str, str] = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

_EVERY_PREFIX = "@every"
_DURATION_TOKEN = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_UNIT_NANOS: dict[str, int] = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_NANOS_PER_SECOND = Decimal(1_000_000_000)


# ─────────────────────────────────────────────────────────────────────────────
# Triggers
# ─────────────────────────────────────────────────────────────────────────────

class Trigger(Protocol):
    expr: str

    def next_after(self, dt: datetime) -> datetime:
        ...


@dataclass(frozen=True)
class CronTrigger:
    """Cron expression, evaluated in the timezone of the datetime passed in."""
    expr: str
    cron_expr: str

    def next_after(self, dt: datetime) -> datetime:
        return croniter(self.cron_expr, dt).get_next(datetime)


@dataclass(frozen=True)
class IntervalTrigger:
    """Fixed interval of elapsed time, aligned to whole seconds."""
    expr: str
    interval: timedelta

    def next_after(self, dt: datetime) -> datetime:
        # added in UTC so a DST change does not stretch or shrink the interval
        nxt = dt.astimezone(timezone.utc).replace(microsecond=0) + self.interval
        return nxt.astimezone(dt.tzinfo)


def parse_duration(text: str) -> timedelta:
    """
    Parse a Go-style duration ("90s", "1h30m", "1.5h") into a timedelta.

    Fractions of a second are truncated and anything shorter than one
    second becomes one second, so "@every 1.5s" fires every second.
    """
    text = text.strip()
    if not text:
        raise ValueError("empty duration")
    pos = 0
    total = Decimal(0)
    while pos < len(text):
        m = _DURATION_TOKEN.match(text, pos)
        if m is None:
            raise ValueError(f"invalid duration {text!r}")
        total += Decimal(m.group(1)) * _UNIT_NANOS[m.group(2)]
        pos = m.end()
    if total <= 0:
        raise ValueError(f"duration must be positive, got {text!r}")
    return timedelta(seconds=max(1, int(total // _NANOS_PER_SECOND)))


@functools.lru_cache(maxsize=1)
def local_zone() -> tzinfo:
    """
    The host's time zone as a DST-aware tzinfo.

    Resolution order: the TZ environment variable, the zone /etc/localtime
    links to, the contents of /etc/localtime. A host with none of these gets
    its current fixed UTC offset.
    """
    name = os.environ.get("TZ", "").lstrip(":")
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            log.warning("triggers.unknown_tz", tz=name)

    localtime = "/etc/localtime"
    if os.path.islink(localtime):
        target = os.path.realpath(localtime)
        marker = "/zoneinfo/"
        if marker in target:
            try:
                return ZoneInfo(target.split(marker, 1)[1])
            except (ZoneInfoNotFoundError, ValueError):
                pass
    if os.path.isfile(localtime):
        with open(localtime, "rb") as f:
            return ZoneInfo.from_file(f, key="localtime")

    return datetime.now().astimezone().tzinfo


def _to_croniter_fields(expr: str) -> str:
    """Map our cron grammar onto croniter's (seconds go last in croniter)."""
    fields = expr.split()
    if len(fields) == 5:
        return " ".join(fields)
    if len(fields) == 6:
        return " ".join(fields[1:] + fields[:1])
    raise ValueError(f"expected 5 or 6 fields, found {len(fields)}")


def parse_trigger(expr: str) -> Trigger:
    """
    Parse a schedule expression.

    Raises TriggerParseError for anything the grammar above does not accept.
    """
    stripped = expr.strip()
    if not stripped:
        raise TriggerParseError(expr, "empty expression")

    if stripped.startswith(_EVERY_PREFIX):
        rest = stripped[len(_EVERY_PREFIX):]
        if not rest[:1].isspace():
            raise TriggerParseError(expr, "expected '@every <duration>'")
        try:
            return IntervalTrigger(expr=expr, interval=parse_duration(rest))
        except ValueError as e:
            raise TriggerParseError(expr, str(e)) from e

    if stripped.startswith("@"):
        cron_expr = _SHORTCUTS.get(stripped.lower())
        if cron_expr is None:
            raise TriggerParseError(expr, "unknown descriptor")
    else:
        try:
            cron_expr = _to_croniter_fields(stripped)
        except ValueError as e:
            raise TriggerParseError(expr, str(e)) from e

    try:
        croniter(cron_expr)
    except (ValueError, KeyError) as e:
        raise TriggerParseError(expr, str(e)) from e
    return CronTrigger(expr=expr, cron_expr=cron_expr)


# ─────────────────────────────────────────────────────────────────────────────
# Schedule
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class _Entry:
    name: str
    trigger: Trigger
    job: Job
    next_fire: Optional[datetime] = None


@dataclass
class Schedule:
    """
    One armed set of triggers.

    tz=None evaluates triggers in the host's zone (see local_zone()); pass
    datetime.timezone.utc for UTC wall-clock boundaries.

    Lifecycle::

        schedule = Schedule(tz=timezone.utc)
        schedule.add_job("@every 5m", job, name="ping @ @every 5m <...>")
        schedule.start()          # needs a running event loop
        await schedule.stop()     # disarm; in-flight runs continue
        await schedule.wait()     # wait for in-flight runs
    """
    tz: Optional[tzinfo] = None
    _entries: list[_Entry] = field(default_factory=list, init=False)
    _watchers: list[asyncio.Task] = field(default_factory=list, init=False)
    _inflight: set[asyncio.Task] = field(default_factory=set, init=False)
    _running: bool = field(default=False, init=False)

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def busy(self) -> bool:
        """True while runs spawned by this schedule are still in flight."""
        return bool(self._inflight)

    def now(self) -> datetime:
        return datetime.now(self.tz if self.tz is not None else local_zone())

    def add_job(self, expr: str, job: Job, *, name: str = "") -> Trigger:
        """Parse expr and register job. Arms immediately if already started."""
        trigger = parse_trigger(expr)
        entry = _Entry(name=name or expr, trigger=trigger, job=job)
        self._entries.append(entry)
        if self._running:
            self._arm(entry)
        return trigger

    def start(self) -> None:
        if self._running:
            log.warning("schedule.already_running")
            return
        self._running = True
        for entry in self._entries:
            self._arm(entry)

    async def stop(self) -> None:
        """Cancel all watcher loops and wait for them to exit."""
        if not self._running:
            return
        self._running = False
        for w in self._watchers:
            w.cancel()
        if self._watchers:
            await asyncio.gather(*self._watchers, return_exceptions=True)
        self._watchers.clear()

    async def wait(self) -> None:
        """Wait for every run spawned by this schedule to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def entries(self) -> list[tuple[str, str, Optional[datetime]]]:
        """(name, expression, next fire time) for each job."""
        now = self.now()
        out = []
        for e in self._entries:
            nxt = e.next_fire if self._running and e.next_fire else e.trigger.next_after(now)
            out.append((e.name, e.trigger.expr, nxt))
        return out

    # ── Watcher loop ──────────────────────────────────────────────────────────

    def _arm(self, entry: _Entry) -> None:
        watcher = asyncio.create_task(
            self._watch(entry),
            name=f"schedule:watch:{entry.name}",
        )
        self._watchers.append(watcher)

    async def _watch(self, entry: _Entry) -> None:
        """Sleep until the next fire time, spawn the job, repeat."""
        last: Optional[datetime] = None
        try:
            while self._running:
                now = self.now()
                base = now if last is None or last.timestamp() < now.timestamp() else last
                next_fire = entry.trigger.next_after(base)
                entry.next_fire = next_fire
                # same-zone aware subtraction ignores DST; compare instants
                await asyncio.sleep(max(next_fire.timestamp() - now.timestamp(), 0))
                if not self._running:
                    break
                last = next_fire
                self._spawn(entry)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            log.error(
                "schedule.watcher.crashed",
                job=entry.name,
                error=str(e),
                error_type=type(e).__name__,
            )

    def _spawn(self, entry: _Entry) -> None:
        run = asyncio.create_task(
            entry.job(),
            name=f"schedule:run:{entry.name}:{uuid.uuid4().hex[:6]}",
        )
        self._inflight.add(run)
        run.add_done_callback(self._run_done)

    def _run_done(self, run: asyncio.Task) -> None:
        self._inflight.discard(run)
        if run.cancelled():
            return
        exc = run.exception()
        if exc is not None:
            log.error(
                "schedule.job_crashed",
                job=run.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

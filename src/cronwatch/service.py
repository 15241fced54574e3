"""
service.py — cronwatch service lifecycle

Service wires the task-file watcher to the Scheduler and exposes the hooks a
service manager (or the CLI in main.py) drives:

    service = Service.from_settings(settings)
    service.init()          # resolve the task file, create it from the sample if needed
    await service.start()   # reload loop; returns after stop()
    await service.stop()    # disarm triggers, stop watching
    await service.wait()    # drain runs still in flight

Reload notifications are processed one at a time by start(); decode and
validation problems are logged and the current generation keeps running.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Optional

from cronwatch.config.settings import Settings
from cronwatch.config.watch import WatchConfig
from cronwatch.exceptions import ConfigDecodeError
from cronwatch.observability.logger import get_logger
from cronwatch.scheduler.executor import Executor
from cronwatch.scheduler.scheduler import Scheduler
from cronwatch.tasks.actions import ActionRunner
from cronwatch.tasks.schema import SAMPLE_CONFIG

log = get_logger(__name__)


class Service:

    def __init__(
        self,
        settings: Settings,
        *,
        actions: Optional[ActionRunner] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self._settings = settings
        self._actions = actions or ActionRunner.from_settings(settings)
        self.scheduler = scheduler or Scheduler(Executor(self._actions))
        self.watch: Optional[WatchConfig] = None
        self._loop_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Service":
        return cls(settings)

    def init(self) -> None:
        """Open the task file source. Logs and re-raises on failure."""
        path = self._settings.tasks_path
        watch = WatchConfig(
            path,
            sample=SAMPLE_CONFIG,
            poll_interval=self._settings.scheduler.poll_interval_seconds,
        )
        try:
            watch.open()
        except OSError as e:
            log.error("service.open_failed", path=str(path), error=str(e))
            raise
        self.watch = watch
        log.info("service.init", tasks_file=str(path))

    async def start(self) -> None:
        """Run the reload loop until stop() is called."""
        if self.watch is None:
            raise RuntimeError("Service.init() must be called before start()")

        self._loop_task = asyncio.current_task()
        self.watch.trigger()
        async for _ in self.watch.changes():
            try:
                config = self.watch.load()
            except ConfigDecodeError as e:
                log.warning(
                    "service.config_load_failed",
                    path=str(self.watch.path),
                    error=str(e),
                    kept_generation=self.scheduler.generation,
                )
                continue
            await self.scheduler.reload(config)
        log.info("service.reload_loop_exited")

    async def stop(self) -> None:
        """Halt the reload loop first so no swap can re-arm triggers after stop."""
        if self.watch is not None:
            self.watch.close()
        loop_task = self._loop_task
        if loop_task is not None and loop_task is not asyncio.current_task() and not loop_task.done():
            loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await loop_task
        await self.scheduler.stop()

    async def wait(self) -> None:
        await self.scheduler.wait()
        await self._actions.aclose()

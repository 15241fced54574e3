"""
config/watch.py — task file change source

WatchConfig turns the task file into a stream of change notifications:

* open() creates the file (and its directory) from a sample when missing,
  and records the current fingerprint.
* trigger() queues a notification without touching the file; the service
  uses it to force the initial load.
* changes() is an async iterator yielding once per notification: queued
  triggers first, then every change of the file's (mtime, size)
  fingerprint seen by polling. A file that disappears is not a change;
  the next one that appears is.
* load() reads and decodes the current file.

Notifications are level-triggered: several writes between two polls
collapse into a single notification, and load() always reads the latest
content.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import AsyncIterator, Optional

from cronwatch.exceptions import ConfigDecodeError
from cronwatch.observability.logger import get_logger
from cronwatch.tasks.schema import AppConfig

log = get_logger(__name__)

Fingerprint = Optional[tuple[int, int]]


class WatchConfig:

    def __init__(
        self,
        path: str | Path,
        *,
        sample: Optional[AppConfig] = None,
        poll_interval: float = 1.0,
    ) -> None:
        self.path = Path(path)
        self._sample = sample
        self._poll_interval = poll_interval
        self._pending = 0
        self._wakeup = asyncio.Event()
        self._closed = False
        self._fingerprint: Fingerprint = None

    # ── Setup ─────────────────────────────────────────────────────────────────

    def open(self) -> None:
        """Ensure the file exists. Raises OSError if it can't be created or read."""
        if not self.path.exists():
            if self._sample is None:
                raise FileNotFoundError(f"task file not found: {self.path}")
            self.write(self._sample)
            log.info("watch.sample_written", path=str(self.path))
        if not os.access(self.path, os.R_OK):
            raise PermissionError(f"task file is not readable: {self.path}")
        self._fingerprint = self._stat()

    def write(self, config: AppConfig) -> None:
        """Write `config` atomically (temp file + rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_bytes(config.encode())
        tmp.replace(self.path)

    def close(self) -> None:
        self._closed = True
        self._wakeup.set()

    # ── Notifications ─────────────────────────────────────────────────────────

    def trigger(self) -> None:
        self._pending += 1
        self._wakeup.set()

    async def changes(self) -> AsyncIterator[None]:
        while not self._closed:
            if self._pending:
                self._pending -= 1
                yield
                continue

            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass
            if self._closed:
                break

            current = self._stat()
            if current is not None and current != self._fingerprint:
                self._fingerprint = current
                log.debug("watch.changed", path=str(self.path))
                yield
            elif current is None and self._fingerprint is not None:
                log.warning("watch.file_missing", path=str(self.path))
                self._fingerprint = None

    # ── Decode ────────────────────────────────────────────────────────────────

    def load(self) -> AppConfig:
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise ConfigDecodeError(f"cannot read {self.path}: {e}") from e
        return AppConfig.decode(raw)

    def _stat(self) -> Fingerprint:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size)

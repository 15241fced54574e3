"""
tasks/actions.py — ping and exec actions

ActionRunner performs the two built-in actions and owns their transport:

  ping   GET the URL with a shared httpx.AsyncClient (redirects followed) and
         compare the full body byte-for-byte with the expected string.
  exec   Spawn the command without a shell, capture stdout+stderr combined,
         succeed only on exit status 0.

Timeouts: http_timeout applies to every phase of the request (httpx
semantics). exec_timeout bounds the whole process lifetime; on expiry the
process is killed and the run fails. exec_timeout=0 disables it.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Optional, Sequence

import httpx

from cronwatch.exceptions import (
    ActionExecError,
    ActionMismatchError,
    ActionTransportError,
)

MAX_OUTPUT_CHARS = 50_000


def _clip(text: str) -> str:
    if len(text) <= MAX_OUTPUT_CHARS:
        return text
    return text[:MAX_OUTPUT_CHARS] + f"\n... [{len(text) - MAX_OUTPUT_CHARS} chars truncated]"


class ActionRunner:
    """
    Transport for task actions. One instance is shared by all tasks.

    Pass `transport` (e.g. httpx.MockTransport) to route pings somewhere
    other than the network.
    """

    def __init__(
        self,
        *,
        http_timeout: float = 30.0,
        exec_timeout: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http_timeout = http_timeout
        self._exec_timeout = exec_timeout or None
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings) -> "ActionRunner":
        return cls(
            http_timeout=settings.actions.http_timeout_seconds,
            exec_timeout=settings.actions.exec_timeout_seconds,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._http_timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ── ping ──────────────────────────────────────────────────────────────────

    async def ping(self, url: str, expected: str) -> None:
        try:
            response = await self._get_client().get(url)
            body = response.content
        except httpx.HTTPError as e:
            raise ActionTransportError(f"GET {url} failed: {type(e).__name__}: {e}") from e

        if body != expected.encode("utf-8"):
            raise ActionMismatchError(expected, body.decode("utf-8", errors="replace"))

    # ── exec ──────────────────────────────────────────────────────────────────

    async def exec(self, command: str, args: Sequence[str] = ()) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                stdin=asyncio.subprocess.DEVNULL,
            )
        except (OSError, ValueError) as e:
            raise ActionExecError(f"Failed to start command {command!r}: {e}") from e

        try:
            output_b, _ = await asyncio.wait_for(proc.communicate(), timeout=self._exec_timeout)
        except asyncio.TimeoutError:
            # the process may exit on its own between the timeout and the kill
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            output_b, _ = await proc.communicate()
            output = _clip(output_b.decode("utf-8", errors="replace"))
            raise ActionExecError(
                f"Command timed out after {self._exec_timeout}s, output: {output}",
                returncode=proc.returncode,
                output=output,
            )

        output = _clip(output_b.decode("utf-8", errors="replace"))
        if proc.returncode != 0:
            raise ActionExecError(
                f"Failed to run command. Error: exit status {proc.returncode}, output: {output}",
                returncode=proc.returncode,
                output=output,
            )

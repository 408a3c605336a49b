"""Engine channel over a subprocess speaking line-delimited JSON on stdio."""

from __future__ import annotations

import asyncio
import asyncio.subprocess as aio_subprocess
import contextlib
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping

from agentwire.client.channel import EngineChannel
from agentwire.client.messages import Ready, parse_envelope
from agentwire.errors import ChannelClosed
from agentwire.log_utils import log_event

logger = logging.getLogger(__name__)

# Full-state snapshots can be large; the asyncio default line limit is 64 KiB.
READ_LIMIT = 16 * 1024 * 1024


def spawn_command(program: str, args: Iterable[str]) -> list[str]:
    """Build the argv for the engine, running non-executable scripts with this interpreter."""
    program_path = Path(program)
    if program_path.exists() and not os.access(program_path, os.X_OK):
        return [sys.executable, str(program_path), *args]
    return [program, *args]


class StdioChannel(EngineChannel):
    """Spawn the engine and exchange one JSON envelope per line.

    The engine signals readiness with a ``{"type": "ready"}`` line; every
    other line is handed to the registered listener in order.
    """

    def __init__(
        self,
        program: str,
        args: Iterable[str] = (),
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> None:
        super().__init__()
        self._argv = spawn_command(program, list(args))
        self._env = dict(env) if env is not None else None
        self._cwd = cwd
        self._proc: aio_subprocess.Process | None = None
        self._reader: asyncio.Task[None] | None = None

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode if self._proc is not None else None

    async def start(self) -> None:
        self._proc = await asyncio.create_subprocess_exec(
            *self._argv,
            stdin=aio_subprocess.PIPE,
            stdout=aio_subprocess.PIPE,
            env=self._env,
            cwd=self._cwd,
            limit=READ_LIMIT,
        )
        if self._proc.stdin is None or self._proc.stdout is None:
            await self.close()
            raise ChannelClosed("engine process does not expose stdio pipes")
        log_event(logger, "stdio.started", pid=self._proc.pid, program=self._argv[0])
        self._reader = asyncio.create_task(self._read_loop(self._proc.stdout))

    async def _read_loop(self, stdout: asyncio.StreamReader) -> None:
        try:
            while True:
                line = await stdout.readline()
                if not line:
                    break
                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                envelope = parse_envelope(text)
                if envelope is None:
                    continue
                if isinstance(envelope, Ready):
                    self.mark_ready()
                    continue
                try:
                    self._deliver(envelope)
                except Exception as exc:  # noqa: BLE001
                    log_event(logger, "stdio.listener_failed", level=logging.ERROR, error=str(exc))
        except (ValueError, ConnectionError) as exc:
            log_event(logger, "stdio.read_failed", level=logging.ERROR, error=str(exc))
        finally:
            self._mark_closed()

    async def _write(self, message: Dict[str, Any]) -> None:
        proc = self._proc
        if proc is None or proc.stdin is None:
            raise ChannelClosed("engine process is not running")
        data = (json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8")
        try:
            proc.stdin.write(data)
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            self._mark_closed()
            raise ChannelClosed(str(exc)) from exc

    async def close(self) -> None:
        proc = self._proc
        if proc is not None and proc.stdin is not None and not proc.stdin.is_closing():
            proc.stdin.close()
        if proc is not None and proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.terminate()
                await proc.wait()
        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
        self._mark_closed()


__all__ = ["READ_LIMIT", "StdioChannel", "spawn_command"]

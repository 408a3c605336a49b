"""Line-based human input, including a cancellable timeout race."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from prompt_toolkit import PromptSession  # type: ignore
from prompt_toolkit.key_binding import KeyBindings  # type: ignore

from agentwire.log_utils import log_event

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
ActivityCallback = Callable[[], None]


class InputUnavailable(Exception):
    """The input stream closed or the user interrupted the prompt."""


INPUT_FAILURES = (InputUnavailable, EOFError, OSError)


@dataclass(frozen=True)
class TimedAnswer:
    value: str
    timed_out: bool = False
    failed: bool = False


class LineInput:
    """Source of human answers, one line per prompt.

    Subclasses implement ``ask``. They call ``on_activity`` as soon as the
    user starts typing, which stops a running timeout in
    ``ask_with_timeout`` so a half-typed answer is never replaced.
    """

    def __init__(self, *, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep

    async def ask(self, prompt: str, *, on_activity: ActivityCallback | None = None) -> str:
        raise NotImplementedError

    async def ask_with_timeout(self, prompt: str, timeout_s: float, default: str) -> TimedAnswer:
        """Race a line of input against a timer; the first to finish wins.

        Timer first: the pending read is cancelled and ``default`` returned.
        Input first, or typing started: the timer is cancelled. An input
        failure resolves to ``default`` as well. Both tasks are always
        finished before returning.
        """
        timer = asyncio.ensure_future(self._sleep(timeout_s))

        def _on_activity() -> None:
            if not timer.done():
                timer.cancel()

        reader = asyncio.ensure_future(self.ask(prompt, on_activity=_on_activity))
        try:
            done, _pending = await asyncio.wait({reader, timer}, return_when=asyncio.FIRST_COMPLETED)
            if reader in done or timer.cancelled():
                try:
                    return TimedAnswer(await reader)
                except INPUT_FAILURES as exc:
                    log_event(logger, "input.failed", level=logging.WARNING, error=type(exc).__name__)
                    return TimedAnswer(default, failed=True)
            log_event(logger, "input.timeout", timeout_s=timeout_s)
            return TimedAnswer(default, timed_out=True)
        finally:
            for task in (reader, timer):
                if not task.done():
                    task.cancel()
            await asyncio.gather(reader, timer, return_exceptions=True)


class PromptToolkitInput(LineInput):
    """Read answers with prompt_toolkit; Escape cancels the current prompt."""

    CANCEL_TOKEN = "__CANCEL__"

    def __init__(self, *, sleep: Sleep = asyncio.sleep) -> None:
        super().__init__(sleep=sleep)
        kb = KeyBindings()

        @kb.add("escape")
        def _(event):  # type: ignore
            if not event.app.is_done:
                event.app.exit(result=self.CANCEL_TOKEN)

        self._session: PromptSession = PromptSession(key_bindings=kb)

    async def ask(self, prompt: str, *, on_activity: ActivityCallback | None = None) -> str:
        buffer = self._session.default_buffer

        def _changed(_buffer) -> None:  # type: ignore
            if on_activity is not None:
                on_activity()

        buffer.on_text_changed += _changed
        try:
            line = await self._session.prompt_async(prompt)
        except (EOFError, KeyboardInterrupt) as exc:
            raise InputUnavailable(type(exc).__name__) from exc
        finally:
            buffer.on_text_changed -= _changed
        if line == self.CANCEL_TOKEN:
            raise InputUnavailable("cancelled")
        return line


__all__ = [
    "INPUT_FAILURES",
    "InputUnavailable",
    "LineInput",
    "PromptToolkitInput",
    "TimedAnswer",
]

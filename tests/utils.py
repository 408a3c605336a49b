from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Iterable

from agentwire.client.display import OutputSink
from agentwire.client.messages import Message
from agentwire.client.prompts import LineInput


async def settle(rounds: int = 25) -> None:
    """Let scheduled tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Deterministic replacement for ``asyncio.sleep`` driven by ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self._sleepers: list[tuple[float, asyncio.Future[None]]] = []

    async def sleep(self, delay: float) -> None:
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + delay, fut))
        try:
            await fut
        finally:
            self._sleepers = [(deadline, other) for deadline, other in self._sleepers if other is not fut]

    def pending_sleepers(self) -> int:
        return sum(1 for _deadline, fut in self._sleepers if not fut.done())

    async def advance(self, seconds: float) -> None:
        self.now += seconds
        for deadline, fut in list(self._sleepers):
            if deadline <= self.now + 1e-9 and not fut.done():
                fut.set_result(None)
        await settle()


class ScriptedInput(LineInput):
    """Line input fed from a script, or held open until the test types a line."""

    def __init__(self, answers: Iterable[Any] = (), *, sleep=asyncio.sleep) -> None:
        super().__init__(sleep=sleep)
        self._answers = deque(answers)
        self.prompts: list[str] = []
        self.cancelled = 0
        self._waiter: asyncio.Future[str] | None = None
        self._on_activity = None

    @property
    def waiting(self) -> bool:
        return self._waiter is not None and not self._waiter.done()

    async def ask(self, prompt: str, *, on_activity=None) -> str:
        self.prompts.append(prompt)
        if self._answers:
            answer = self._answers.popleft()
            if isinstance(answer, BaseException):
                raise answer
            return answer
        self._waiter = asyncio.get_running_loop().create_future()
        self._on_activity = on_activity
        try:
            return await self._waiter
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self._waiter = None
            self._on_activity = None

    def start_typing(self) -> None:
        if self._on_activity is not None:
            self._on_activity()

    def type_line(self, text: str) -> None:
        assert self._waiter is not None, "no prompt is waiting for input"
        self._waiter.set_result(text)

    def fail(self, exc: BaseException) -> None:
        assert self._waiter is not None, "no prompt is waiting for input"
        self._waiter.set_exception(exc)


class RecordingSink(OutputSink):
    def __init__(self) -> None:
        self.events: list[tuple[str, ...]] = []

    def write(self, text: str, *, style: str | None = None) -> None:
        self.events.append(("write", text))

    def write_line(self, header: str, text: str = "", *, style: str | None = None) -> None:
        self.events.append(("line", header, text))

    def write_error(self, header: str, text: str = "") -> None:
        self.events.append(("error", header, text))

    @property
    def writes(self) -> list[str]:
        return [event[1] for event in self.events if event[0] == "write"]

    @property
    def lines(self) -> list[str]:
        return [" ".join(part for part in event[1:] if part) for event in self.events if event[0] == "line"]

    @property
    def errors(self) -> list[tuple[str, ...]]:
        return [event[1:] for event in self.events if event[0] == "error"]


def say(ts: int, subtype: str = "text", text: str = "", partial: bool = False) -> Message:
    return Message(ts=ts, kind="say", subtype=subtype, text=text, partial=partial)


def ask(ts: int, subtype: str, text: str = "", partial: bool = False) -> Message:
    return Message(ts=ts, kind="ask", subtype=subtype, text=text, partial=partial)


def state_envelope(*messages: Message, **state: Any) -> dict[str, Any]:
    return {"type": "state", "state": {"messages": [message.to_wire() for message in messages], **state}}


def updated_envelope(message: Message) -> dict[str, Any]:
    return {"type": "messageUpdated", "message": message.to_wire()}


FAKE_ENGINE = '''
import json
import sys


def send(obj):
    sys.stdout.write(json.dumps(obj) + "\\n")
    sys.stdout.flush()


send({"type": "ready"})
for line in sys.stdin:
    message = json.loads(line)
    if message["type"] == "newTask":
        say = {"ts": 1, "type": "say", "say": "text", "text": message["text"]}
        send({"type": "state", "state": {"clineMessages": [say], "mode": "code"}})
        send({"type": "messageUpdated", "clineMessage": {"ts": 2, "type": "say", "say": "text", "text": "Hi", "partial": True}})
        send({"type": "messageUpdated", "clineMessage": {"ts": 2, "type": "say", "say": "text", "text": "Hi there"}})
        send({"type": "messageUpdated", "clineMessage": {"ts": 3, "type": "ask", "ask": "completion_result", "text": ""}})
    elif message["type"] == "cancelTask":
        break
'''


def write_fake_engine(directory, source: str = FAKE_ENGINE):
    script = directory / "engine.py"
    script.write_text(source, encoding="utf-8")
    return script

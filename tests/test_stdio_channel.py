from __future__ import annotations

import asyncio
import sys

import pytest

from agentwire.client.messages import MessageUpdated, StateSnapshot, new_task
from agentwire.client.session import AgentSession
from agentwire.client.stdio_channel import StdioChannel, spawn_command
from agentwire.config import ClientConfig
from agentwire.errors import NotReady

from tests.utils import RecordingSink, ScriptedInput, write_fake_engine


async def _wait_for(predicate, timeout_s: float = 5.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=timeout_s)


def test_spawn_command_runs_plain_scripts_with_interpreter(tmp_path) -> None:
    script = write_fake_engine(tmp_path)

    assert spawn_command(str(script), ["--flag"]) == [sys.executable, str(script), "--flag"]
    assert spawn_command("engine-binary-on-path", []) == ["engine-binary-on-path"]


@pytest.mark.asyncio
async def test_stdio_channel_exchanges_json_lines(tmp_path) -> None:
    channel = StdioChannel(str(write_fake_engine(tmp_path)))
    received = []
    channel.listen(received.append)

    with pytest.raises(NotReady):
        await channel.send(new_task("too early"))

    await channel.start()
    try:
        await asyncio.wait_for(channel.wait_ready(), timeout=5)
        await channel.send(new_task("hello"))
        await _wait_for(lambda: len(received) >= 4)
    finally:
        await channel.close()

    assert isinstance(received[0], StateSnapshot)
    assert received[0].messages[0].text == "hello"
    assert received[0].mode == "code"
    assert all(isinstance(envelope, MessageUpdated) for envelope in received[1:])
    assert channel.closed
    assert channel.returncode is not None


@pytest.mark.asyncio
async def test_engine_exit_closes_channel(tmp_path) -> None:
    script = write_fake_engine(tmp_path, 'print(\'{"type": "ready"}\', flush=True)\n')
    channel = StdioChannel(str(script))
    closed = []
    channel.listen(lambda envelope: None, on_close=lambda: closed.append(True))

    await channel.start()
    await _wait_for(lambda: bool(closed))

    assert channel.is_ready
    assert closed == [True]
    await channel.close()
    assert closed == [True]


@pytest.mark.asyncio
async def test_session_over_stdio_completes_task(tmp_path) -> None:
    channel = StdioChannel(str(write_fake_engine(tmp_path)))
    sink = RecordingSink()
    session = AgentSession(channel, config=ClientConfig(), sink=sink, line_input=ScriptedInput())
    await channel.start()
    try:
        await session.wait_until_ready(timeout_s=5)
        result = await asyncio.wait_for(session.submit_task("hello"), timeout=10)
    finally:
        await session.dispose()

    assert result.success is True
    assert sink.writes == ["\n[assistant] ", "Hi", " there", "\n"]
    assert session.store.get_current_mode() == "code"

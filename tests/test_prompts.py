from __future__ import annotations

import asyncio

import pytest
from prompt_toolkit.application import create_app_session  # type: ignore
from prompt_toolkit.input import create_pipe_input  # type: ignore
from prompt_toolkit.output import DummyOutput  # type: ignore

from agentwire.client.prompts import InputUnavailable, PromptToolkitInput, TimedAnswer

from tests.utils import FakeClock, ScriptedInput, settle


@pytest.mark.asyncio
async def test_answer_before_timeout_wins() -> None:
    clock = FakeClock()
    line_input = ScriptedInput(["2"], sleep=clock.sleep)

    result = await line_input.ask_with_timeout("pick: ", 10, "A")

    assert result == TimedAnswer("2")
    assert clock.pending_sleepers() == 0


@pytest.mark.asyncio
async def test_timeout_returns_default_and_cancels_read() -> None:
    clock = FakeClock()
    line_input = ScriptedInput(sleep=clock.sleep)
    task = asyncio.create_task(line_input.ask_with_timeout("pick: ", 10, "A"))
    await settle()
    assert line_input.waiting

    await clock.advance(10)
    result = await task

    assert result == TimedAnswer("A", timed_out=True)
    assert line_input.cancelled == 1
    assert not line_input.waiting


@pytest.mark.asyncio
async def test_typing_stops_the_timer() -> None:
    clock = FakeClock()
    line_input = ScriptedInput(sleep=clock.sleep)
    task = asyncio.create_task(line_input.ask_with_timeout("pick: ", 10, "A"))
    await settle()

    line_input.start_typing()
    await settle()
    await clock.advance(60)
    assert not task.done()

    line_input.type_line("my own answer")
    result = await task

    assert result == TimedAnswer("my own answer")


@pytest.mark.asyncio
async def test_input_failure_falls_back_to_default() -> None:
    clock = FakeClock()
    line_input = ScriptedInput([InputUnavailable("closed")], sleep=clock.sleep)

    result = await line_input.ask_with_timeout("pick: ", 10, "A")

    assert result == TimedAnswer("A", failed=True)
    assert clock.pending_sleepers() == 0


@pytest.mark.asyncio
async def test_prompt_toolkit_input_reads_a_line() -> None:
    activity = []
    with create_pipe_input() as pipe_input, create_app_session(input=pipe_input, output=DummyOutput()):
        line_input = PromptToolkitInput()
        pipe_input.send_text("hello\r")

        answer = await line_input.ask("> ", on_activity=lambda: activity.append(True))

    assert answer == "hello"
    assert activity


@pytest.mark.asyncio
async def test_prompt_toolkit_input_end_of_file_is_unavailable() -> None:
    with create_pipe_input() as pipe_input, create_app_session(input=pipe_input, output=DummyOutput()):
        line_input = PromptToolkitInput()
        pipe_input.send_text("\x04")

        with pytest.raises(InputUnavailable):
            await line_input.ask("> ")

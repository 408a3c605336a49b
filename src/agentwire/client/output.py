"""Render engine messages to an output sink without duplication."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict

from agentwire.client.display import OutputSink
from agentwire.client.formatting import api_request_cost
from agentwire.client.messages import AskType, Message, SayType
from agentwire.client.stream import DeltaReconstructor, Emission
from agentwire.log_utils import log_event

logger = logging.getLogger(__name__)

STREAM_HEADERS: Dict[str, str] = {
    SayType.TEXT.value: "[assistant]",
    SayType.REASONING.value: "[reasoning]",
    "thinking": "[reasoning]",
    SayType.COMMAND_OUTPUT.value: "[command output]",
}


@dataclass(frozen=True)
class DisplayRecord:
    text: str
    partial: bool


class MessageRenderer:
    """Turns say messages (and streamed ``command_output`` asks) into sink output.

    Streamed subtypes go through a ``DeltaReconstructor``; discrete subtypes
    are written once per ts. Asks other than ``command_output`` are shown by
    the ask engine, not here.
    """

    def __init__(self, sink: OutputSink, *, skip_first_user_message: bool = True, verbose: bool = False) -> None:
        self._sink = sink
        self._verbose = verbose
        self._skip_echo = skip_first_user_message
        self._echo_ts: int | None = None
        self._stream = DeltaReconstructor()
        self._displayed: Dict[int, DisplayRecord] = {}
        self._line_ts: int | None = None

    @property
    def stream(self) -> DeltaReconstructor:
        return self._stream

    def displayed(self, ts: int) -> DisplayRecord | None:
        return self._displayed.get(ts)

    def render(self, message: Message) -> None:
        if message.is_ask:
            if message.ask_type == AskType.COMMAND_OUTPUT:
                self._render_stream(message, STREAM_HEADERS[SayType.COMMAND_OUTPUT.value])
            return

        if message.say_type == SayType.TEXT and self._is_user_echo(message):
            return

        header = STREAM_HEADERS.get(message.subtype)
        if header is not None:
            self._render_stream(message, header)
            return
        self._render_discrete(message)

    def finish_active(self) -> None:
        for emission in self._stream.finish_active():
            self._apply(emission, "")

    def reset(self) -> None:
        self.finish_active()
        self._stream.reset()
        self._displayed.clear()
        self._echo_ts = None
        self._line_ts = None

    def _is_user_echo(self, message: Message) -> bool:
        if not self._skip_echo:
            return False
        if self._echo_ts is None and not self._displayed:
            self._echo_ts = message.ts
        if message.ts != self._echo_ts:
            return False
        self._displayed[message.ts] = DisplayRecord(message.text, message.partial)
        return True

    def _render_stream(self, message: Message, header: str) -> None:
        for emission in self._stream.on_snapshot(message.ts, message.text, message.partial):
            self._apply(emission, header)
        self._displayed[message.ts] = DisplayRecord(message.text, message.partial)

    def _apply(self, emission: Emission, header: str) -> None:
        if emission.kind == "init":
            if self._stream.tracker(emission.ts) is not None and self._stream.active_ts == emission.ts:
                self._sink.write(f"\n{header} ")
                self._sink.write(emission.text)
                self._line_ts = emission.ts
            elif emission.text:
                self._sink.write_line(header, emission.text)
                self._line_ts = None
        elif emission.kind == "delta":
            if self._line_ts != emission.ts:
                self._sink.write(f"\n{header} ")
                self._line_ts = emission.ts
            self._sink.write(emission.text)
        elif self._line_ts == emission.ts:
            self._sink.write("\n")
            self._line_ts = None

    def _render_discrete(self, message: Message) -> None:
        previous = self._displayed.get(message.ts)
        if message.partial or (previous is not None and not previous.partial):
            return

        say_type = message.say_type
        text = message.text
        if say_type == SayType.COMPLETION_RESULT:
            self._sink.write_line("[task complete]", text)
        elif say_type == SayType.ERROR:
            self._sink.write_error("[error]", text or "Unknown error")
        elif say_type == SayType.TOOL:
            if not text:
                return
            self._sink.write_line("[tool]", text)
        elif say_type == SayType.API_REQ_STARTED:
            log_event(logger, "render.api_request", level=logging.DEBUG, ts=message.ts, cost=api_request_cost(text))
            return
        else:
            if say_type is None:
                log_event(logger, "render.unknown_say", level=logging.DEBUG, subtype=message.subtype, ts=message.ts)
            if not (self._verbose and text):
                return
            self._sink.write_line(f"[{message.subtype}]", text)
        self._line_ts = None
        self._displayed[message.ts] = DisplayRecord(text, False)


__all__ = ["DisplayRecord", "MessageRenderer", "STREAM_HEADERS"]

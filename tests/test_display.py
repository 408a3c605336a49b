from __future__ import annotations

import io

import agentwire.client.display as display
from agentwire.client.display import RichSink, SilentSink

from tests.utils import RecordingSink


def _capture(monkeypatch):
    printed = []

    def fake_print(ansi, end="\n", file=None):
        printed.append((ansi.value, file))

    monkeypatch.setattr(display, "print_formatted_text", fake_print)
    return printed


def test_rich_sink_writes_streamed_text_and_lines(monkeypatch) -> None:
    printed = _capture(monkeypatch)
    sink = RichSink(color_system=None)

    sink.write("Hel")
    sink.write("lo")
    sink.write_line("[tool]", "readFile")
    sink.write_line("", "  path: a.txt")

    assert [value for value, _file in printed] == ["Hel", "lo", "\n[tool] readFile\n", "  path: a.txt\n"]


def test_rich_sink_empty_write_prints_nothing(monkeypatch) -> None:
    printed = _capture(monkeypatch)
    sink = RichSink(color_system=None)

    sink.write("")

    assert printed == []


def test_rich_sink_errors_go_to_error_file(monkeypatch) -> None:
    printed = _capture(monkeypatch)
    errors = io.StringIO()
    sink = RichSink(color_system=None, error_file=errors)

    sink.write_error("[error]", "bad")

    assert printed == [("[error] bad\n", errors)]


def test_rich_sink_colors_headers(monkeypatch) -> None:
    printed = _capture(monkeypatch)
    sink = RichSink()

    sink.write_line("[task complete]", "done")

    value = printed[0][0]
    assert "\x1b[" in value
    assert "[task complete]" in value


def test_silent_sink_forwards_only_errors() -> None:
    target = RecordingSink()
    sink = SilentSink(errors=target)

    sink.write("text")
    sink.write_line("[assistant]", "hi")
    sink.write_error("[error]", "bad")

    assert target.events == [("error", "[error]", "bad")]
    SilentSink().write_error("[error]", "dropped")

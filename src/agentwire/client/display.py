"""Output sinks: a rich-rendered terminal sink and a silent sink for quiet mode."""

from __future__ import annotations

import sys
from io import StringIO
from threading import Lock
from typing import Any, TextIO

from prompt_toolkit.formatted_text import ANSI  # type: ignore
from prompt_toolkit.shortcuts import print_formatted_text  # type: ignore
from rich.console import Console
from rich.text import Text

HEADER_STYLES = {
    "[assistant]": "bold green",
    "[reasoning]": "#aaaaaa",
    "[command output]": "cyan",
    "[task complete]": "bold green",
    "[error]": "bold red",
    "[question]": "bold yellow",
}


class OutputSink:
    """Where rendered session output goes.

    ``write`` appends raw streamed text; ``write_line`` starts a discrete
    line with an optional bracketed header. Sinks are write-only.
    """

    def write(self, text: str, *, style: str | None = None) -> None:
        raise NotImplementedError

    def write_line(self, header: str, text: str = "", *, style: str | None = None) -> None:
        raise NotImplementedError

    def write_error(self, header: str, text: str = "") -> None:
        self.write_line(header, text, style="red")


def _render_text(text: str, style: str | None) -> Text:
    if "\x1b" in text:
        return Text.from_ansi(text)
    if style:
        return Text(text, style=style)
    return Text(text)


class RichSink(OutputSink):
    """Render through a rich console buffer and print with prompt_toolkit.

    Printing through prompt_toolkit keeps output above an active prompt
    instead of corrupting it.
    """

    def __init__(self, *, color_system: str | None = "standard", error_file: TextIO | None = None) -> None:
        self._buffer = StringIO()
        self._console = Console(
            file=self._buffer,
            force_terminal=color_system is not None,
            color_system=color_system,
            markup=False,
            highlight=False,
        )
        self._lock = Lock()
        self._error_file = error_file
        self._at_line_start = True

    def write(self, text: str, *, style: str | None = None) -> None:
        if not text:
            return
        self._render_and_print(_render_text(text, style))
        self._at_line_start = text.endswith("\n")

    def write_line(self, header: str, text: str = "", *, style: str | None = None) -> None:
        self._render_and_print(self._line(header, text, style))
        self._at_line_start = True

    def write_error(self, header: str, text: str = "") -> None:
        self._render_and_print(self._line(header, text, "red"), file=self._error_file or sys.stderr)
        self._at_line_start = True

    def _line(self, header: str, text: str, style: str | None) -> Text:
        line = Text("\n" if not self._at_line_start else "")
        if header:
            line.append(header, style=style or HEADER_STYLES.get(header, "bold"))
            if text:
                line.append(" ")
        if text:
            line.append_text(_render_text(text, style if not header else None))
        line.append("\n")
        return line

    def _render_and_print(self, renderable: Any, *, file: TextIO | None = None) -> None:
        with self._lock:
            self._buffer.seek(0)
            self._buffer.truncate(0)
            self._console.print(renderable, end="", soft_wrap=True)
            output = self._buffer.getvalue()
        if output:
            print_formatted_text(ANSI(output), end="", file=file)


class SilentSink(OutputSink):
    """Discard all output; errors optionally go to another sink."""

    def __init__(self, errors: OutputSink | None = None) -> None:
        self._errors = errors

    def write(self, text: str, *, style: str | None = None) -> None:
        return None

    def write_line(self, header: str, text: str = "", *, style: str | None = None) -> None:
        return None

    def write_error(self, header: str, text: str = "") -> None:
        if self._errors is not None:
            self._errors.write_error(header, text)


__all__ = ["HEADER_STYLES", "OutputSink", "RichSink", "SilentSink"]

"""Session-aware logging setup and structured event helpers."""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import os
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator

from agentwire.config import parse_bool, parse_int, parse_level
from agentwire.paths import log_dir

DEFAULT_LOG_MAX_BYTES = 5_000_000
DEFAULT_LOG_BACKUPS = 3

# Message timestamps that tie a log line back to the engine history.
CORRELATION_KEYS = ("ask_ts", "ts")

_SESSION_FIELDS: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "agentwire_session_fields", default={}
)
_STREAM_TRACE = False


@dataclass(frozen=True)
class LogConfig:
    """Where session logs go and how they are rendered.

    The terminal belongs to streamed assistant output, so records are written
    to a rotating file and only mirrored to stderr on request. ``log_stream``
    turns on one record per partial snapshot, which is noisy.
    """

    log_file: Path
    level: int = logging.INFO
    stderr: bool = False
    json: bool = False
    log_stream: bool = False
    max_bytes: int = DEFAULT_LOG_MAX_BYTES
    backup_count: int = DEFAULT_LOG_BACKUPS


def build_log_config(*, log_file_name: str, default_level: int = logging.INFO) -> LogConfig:
    """Read ``AGENTWIRE_LOG_*`` settings, creating the log directory."""

    directory = Path(os.getenv("AGENTWIRE_LOG_DIR") or str(log_dir()))
    directory.mkdir(parents=True, exist_ok=True)

    return LogConfig(
        log_file=directory / log_file_name,
        level=parse_level(os.getenv("AGENTWIRE_LOG_LEVEL"), default_level),
        stderr=parse_bool(os.getenv("AGENTWIRE_LOG_STDERR"), False),
        json=parse_bool(os.getenv("AGENTWIRE_LOG_JSON"), False),
        log_stream=parse_bool(os.getenv("AGENTWIRE_LOG_STREAM"), False),
        max_bytes=parse_int(os.getenv("AGENTWIRE_LOG_MAX_BYTES"), DEFAULT_LOG_MAX_BYTES),
        backup_count=parse_int(os.getenv("AGENTWIRE_LOG_BACKUPS"), DEFAULT_LOG_BACKUPS),
    )


def configure_logging(config: LogConfig) -> None:
    """Install the session handlers on the root logger, replacing any present."""

    global _STREAM_TRACE
    _STREAM_TRACE = config.log_stream

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(config.level)

    formatter: logging.Formatter = SessionJsonFormatter() if config.json else SessionTextFormatter()
    handlers: list[logging.Handler] = [
        RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    ]
    if config.stderr:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(SessionFieldsFilter())
        root_logger.addHandler(handler)


def log_stream_enabled() -> bool:
    """True when every partial snapshot should be logged."""

    return _STREAM_TRACE


@contextlib.contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Tag every record logged inside the block, e.g. ``log_context(ask_ts=ts)``."""

    token = _SESSION_FIELDS.set({**_SESSION_FIELDS.get(), **fields})
    try:
        yield
    finally:
        _SESSION_FIELDS.reset(token)


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Log a dotted event name such as ``ask.answered``; details travel as fields."""

    logger.log(level, event, extra={"event_fields": fields})


def _render(value: Any) -> str:
    if isinstance(value, str):
        if value and not any(ch.isspace() or ch in '="' for ch in value):
            return value
        return json.dumps(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=True, separators=(",", ":"), default=str)
    return str(value)


def _split_correlation(fields: Dict[str, Any]) -> tuple[Dict[str, Any], Dict[str, Any]]:
    keys = {key: fields[key] for key in CORRELATION_KEYS if key in fields}
    rest = {key: fields[key] for key in sorted(fields) if key not in keys}
    return keys, rest


class SessionFieldsFilter(logging.Filter):
    """Merge the active ``log_context`` fields with the event's own fields."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 - logging API name
        merged = {**_SESSION_FIELDS.get(), **getattr(record, "event_fields", {})}
        record.session_fields = {key: value for key, value in merged.items() if value is not None}
        return True


class SessionTextFormatter(logging.Formatter):
    """``<time> <level> <logger> <event> ask_ts=.. ts=.. key=value ...``"""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        keys, rest = _split_correlation(getattr(record, "session_fields", {}))
        parts = [super().format(record)]
        parts.extend(f"{key}={_render(value)}" for key, value in {**keys, **rest}.items())
        return " ".join(parts)


class SessionJsonFormatter(logging.Formatter):
    """One JSON object per record with message timestamps at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        keys, rest = _split_correlation(getattr(record, "session_fields", {}))
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            **keys,
        }
        if rest:
            payload["fields"] = rest
        return json.dumps(payload, ensure_ascii=True, default=str)


__all__ = [
    "CORRELATION_KEYS",
    "DEFAULT_LOG_BACKUPS",
    "DEFAULT_LOG_MAX_BYTES",
    "LogConfig",
    "SessionFieldsFilter",
    "SessionJsonFormatter",
    "SessionTextFormatter",
    "build_log_config",
    "configure_logging",
    "log_context",
    "log_event",
    "log_stream_enabled",
]

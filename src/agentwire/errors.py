"""Error types surfaced to callers of the session facade."""

from __future__ import annotations


class AgentwireError(Exception):
    """Base class for errors raised by agentwire."""


class NotReady(AgentwireError):
    """Raised when sending to the engine before its channel signalled readiness."""

    def __init__(self, message: str = "engine channel is not ready") -> None:
        super().__init__(message)


class TaskTimedOut(AgentwireError):
    """Raised when a task reaches no terminal state within the hard ceiling."""

    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"Task timed out after {timeout_s:g}s")
        self.timeout_s = timeout_s


class ChannelClosed(AgentwireError):
    """Raised when the engine stream ends while a task is still in flight."""


__all__ = ["AgentwireError", "ChannelClosed", "NotReady", "TaskTimedOut"]

"""Instance-scoped event bus and state transition helpers."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Generic, List, Literal, TypeVar

from agentwire.client.agent_state import SessionState, SessionStateInfo
from agentwire.client.messages import AskType, Message
from agentwire.log_utils import log_event

logger = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[..., Any]
Unsubscribe = Callable[[], None]

EventName = Literal[
    "stateChange",
    "message",
    "messageUpdated",
    "waitingForInput",
    "resumedRunning",
    "streamingStarted",
    "streamingEnded",
    "taskCompleted",
    "taskCleared",
    "modeChanged",
    "error",
]

# Ask subtypes that end a task from the consumer's point of view.
TASK_ENDING_ASKS = {
    AskType.COMPLETION_RESULT,
    AskType.API_REQ_FAILED,
    AskType.MISTAKE_LIMIT_REACHED,
}


class EventEmitter:
    """Minimal synchronous emitter.

    Listener failures are logged and never reach the emitting code path, so a
    broken subscriber cannot stall message processing.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Unsubscribe:
        self._listeners.setdefault(event, []).append(listener)
        return lambda: self.off(event, listener)

    def once(self, event: str, listener: Listener) -> Unsubscribe:
        def _wrapper(*args: Any) -> None:
            self.off(event, _wrapper)
            listener(*args)

        return self.on(event, _wrapper)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[event]

    def emit(self, event: str, *args: Any) -> bool:
        listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                listener(*args)
            except Exception as exc:  # noqa: BLE001
                log_event(logger, "events.listener_failed", level=logging.WARNING, event_name=event, error=str(exc))
        return bool(listeners)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)


class Observable(Generic[T]):
    """Holds a current value and notifies subscribers on change.

    New subscribers receive the current value immediately.
    """

    def __init__(self, value: T) -> None:
        self._value = value
        self._subscribers: List[Callable[[T], Any]] = []

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, fn: Callable[[T], Any]) -> Unsubscribe:
        self._subscribers.append(fn)
        self._notify_one(fn, self._value)

        def _unsubscribe() -> None:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

        return _unsubscribe

    def next(self, value: T) -> None:
        self._value = value
        for fn in list(self._subscribers):
            self._notify_one(fn, value)

    def set_silently(self, value: T) -> None:
        self._value = value

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def clear(self) -> None:
        self._subscribers.clear()

    def _notify_one(self, fn: Callable[[T], Any], value: T) -> None:
        try:
            fn(value)
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "events.subscriber_failed", level=logging.WARNING, error=str(exc))


def is_significant_state_change(previous: SessionStateInfo, current: SessionStateInfo) -> bool:
    return (
        previous.state != current.state
        or previous.is_waiting_for_input != current.is_waiting_for_input
        or previous.is_streaming != current.is_streaming
        or previous.current_ask != current.current_ask
    )


def transitioned_to_waiting(previous: SessionStateInfo, current: SessionStateInfo) -> bool:
    return not previous.is_waiting_for_input and current.is_waiting_for_input


def transitioned_to_running(previous: SessionStateInfo, current: SessionStateInfo) -> bool:
    return previous.is_waiting_for_input and current.state in (SessionState.RUNNING, SessionState.STREAMING)


def streaming_started(previous: SessionStateInfo, current: SessionStateInfo) -> bool:
    return not previous.is_streaming and current.is_streaming


def streaming_ended(previous: SessionStateInfo, current: SessionStateInfo) -> bool:
    return previous.is_streaming and not current.is_streaming


def task_completed(previous: SessionStateInfo, current: SessionStateInfo) -> bool:
    """True when the state just settled on an ask that ends the task."""
    if current.current_ask is None or current.is_streaming:
        return False
    if current.current_ask not in {item.value for item in TASK_ENDING_ASKS}:
        return False
    return previous.current_ask != current.current_ask or previous.last_message_ts != current.last_message_ts


def task_succeeded(message: Message | None) -> bool:
    return message is not None and message.ask_type == AskType.COMPLETION_RESULT


__all__ = [
    "EventEmitter",
    "EventName",
    "Observable",
    "TASK_ENDING_ASKS",
    "Unsubscribe",
    "is_significant_state_change",
    "streaming_ended",
    "streaming_started",
    "task_completed",
    "task_succeeded",
    "transitioned_to_running",
    "transitioned_to_waiting",
]

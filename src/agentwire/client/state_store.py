"""Canonical message list and derived session state for one client session."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Deque, Dict, Iterable, List

from agentwire.client.agent_state import SessionState, SessionStateInfo, derive_state
from agentwire.client.events import Observable, Unsubscribe
from agentwire.client.messages import Message
from agentwire.log_utils import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreState:
    messages: tuple[Message, ...] = ()
    agent_state: SessionStateInfo = field(default_factory=lambda: derive_state(()))
    is_initialized: bool = False
    last_updated_at: float | None = None
    current_mode: str | None = None
    engine_state: Dict[str, Any] = field(default_factory=dict)


class StateStore:
    """Owns the message list; every mutation replaces the whole ``StoreState``.

    Subscribers get the new ``StoreState`` after each notifying mutation.
    ``reset()`` is silent: it returns to the pristine state for reuse.
    """

    def __init__(self, *, max_history_size: int = 0, clock: Callable[[], float] = time.time) -> None:
        self._state = StoreState()
        self._clock = clock
        self._subscribers: List[Callable[[StoreState], Any]] = []
        self._agent_state = Observable(self._state.agent_state)
        self._history: Deque[StoreState] = deque(maxlen=max_history_size or None)
        self._max_history_size = max_history_size

    @property
    def state(self) -> StoreState:
        return self._state

    def get_messages(self) -> tuple[Message, ...]:
        return self._state.messages

    def get_agent_state(self) -> SessionStateInfo:
        return self._state.agent_state

    def get_current_mode(self) -> str | None:
        return self._state.current_mode

    def get_last_message(self) -> Message | None:
        return self._state.messages[-1] if self._state.messages else None

    def find_by_ts(self, ts: int) -> Message | None:
        for message in reversed(self._state.messages):
            if message.ts == ts:
                return message
        return None

    def get_pending_ask(self) -> Message | None:
        info = self._state.agent_state
        if info.current_ask is None or info.is_streaming:
            return None
        last = self.get_last_message()
        return last if last is not None and last.is_ask else None

    def is_waiting_for_input(self) -> bool:
        return self._state.agent_state.is_waiting_for_input

    def is_running(self) -> bool:
        return self._state.agent_state.is_running

    def is_streaming(self) -> bool:
        return self._state.agent_state.is_streaming

    def has_task(self) -> bool:
        return self._state.agent_state.state != SessionState.NO_TASK

    def merge(self, messages: Iterable[Message]) -> StoreState:
        """Replace the message list with a full snapshot."""
        items = tuple(messages)
        self._commit(
            replace(
                self._state,
                messages=items,
                agent_state=derive_state(items),
                is_initialized=True,
                last_updated_at=self._clock(),
            )
        )
        return self._state

    def merge_one(self, message: Message) -> StoreState:
        """Upsert a single message by ``ts``; unknown ts values are appended."""
        current = self._state.messages
        index = next((i for i in range(len(current) - 1, -1, -1) if current[i].ts == message.ts), None)
        if index is None:
            items = current + (message,)
        else:
            items = current[:index] + (message,) + current[index + 1 :]
        self._commit(
            replace(
                self._state,
                messages=items,
                agent_state=derive_state(items),
                is_initialized=True,
                last_updated_at=self._clock(),
            )
        )
        return self._state

    def clear(self) -> None:
        """Drop the task's messages; mode and engine settings carry over."""
        self._commit(
            StoreState(
                current_mode=self._state.current_mode,
                engine_state=self._state.engine_state,
                last_updated_at=self._clock(),
            )
        )
        log_event(logger, "store.cleared", level=logging.DEBUG)

    def reset(self) -> None:
        self._state = StoreState()
        self._history.clear()
        self._agent_state.set_silently(self._state.agent_state)

    def set_current_mode(self, mode: str | None) -> None:
        if mode == self._state.current_mode:
            return
        self._commit(replace(self._state, current_mode=mode))

    def set_engine_state(self, engine_state: Dict[str, Any]) -> None:
        self._commit(replace(self._state, engine_state=dict(engine_state)))

    def subscribe(self, fn: Callable[[StoreState], Any]) -> Unsubscribe:
        self._subscribers.append(fn)

        def _unsubscribe() -> None:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

        return _unsubscribe

    def subscribe_to_agent_state(self, fn: Callable[[SessionStateInfo], Any]) -> Unsubscribe:
        return self._agent_state.subscribe(fn)

    def get_history(self) -> List[StoreState]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    def _commit(self, new_state: StoreState) -> None:
        previous = self._state
        if self._max_history_size:
            self._history.append(previous)
        self._state = new_state
        if new_state.agent_state != previous.agent_state:
            self._agent_state.next(new_state.agent_state)
        for fn in list(self._subscribers):
            try:
                fn(new_state)
            except Exception as exc:  # noqa: BLE001
                log_event(logger, "store.subscriber_failed", level=logging.WARNING, error=str(exc))


__all__ = ["StateStore", "StoreState"]

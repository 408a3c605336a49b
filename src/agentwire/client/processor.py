"""Route inbound engine envelopes into the state store and emit session events."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List

from agentwire.client.agent_state import SessionStateInfo
from agentwire.client.events import (
    EventEmitter,
    is_significant_state_change,
    streaming_ended,
    streaming_started,
    task_completed,
    task_succeeded,
    transitioned_to_running,
    transitioned_to_waiting,
)
from agentwire.client.messages import (
    InboundEnvelope,
    Message,
    MessageUpdated,
    OtherEnvelope,
    Ready,
    StateSnapshot,
    parse_envelope,
)
from agentwire.client.state_store import StateStore
from agentwire.log_utils import log_event

logger = logging.getLogger(__name__)

_INFORMATIONAL_TYPES = {"action", "invoke"}


@dataclass(frozen=True)
class StateChange:
    previous: SessionStateInfo
    current: SessionStateInfo


@dataclass(frozen=True)
class TaskCompletion:
    success: bool
    state: SessionStateInfo
    message: Message | None


class MessageProcessor:
    """Apply envelopes to a ``StateStore`` strictly in arrival order.

    Envelopes delivered while another is being applied (for example from an
    event listener) are queued and applied after it, never interleaved.
    ``handle`` returns the messages that were new or changed, in list order.
    """

    def __init__(self, store: StateStore, emitter: EventEmitter) -> None:
        self._store = store
        self._emitter = emitter
        self._queue: Deque[InboundEnvelope] = deque()
        self._draining = False

    def handle(self, raw: Any) -> List[Message]:
        if isinstance(raw, (StateSnapshot, MessageUpdated, Ready, OtherEnvelope)):
            envelope: InboundEnvelope | None = raw
        else:
            envelope = parse_envelope(raw)
        if envelope is None:
            return []
        self._queue.append(envelope)
        if self._draining:
            return []

        touched: List[Message] = []
        self._draining = True
        try:
            while self._queue:
                touched.extend(self._dispatch(self._queue.popleft()))
        finally:
            self._draining = False
        return touched

    def _dispatch(self, envelope: InboundEnvelope) -> List[Message]:
        try:
            if isinstance(envelope, StateSnapshot):
                return self._apply_snapshot(envelope)
            if isinstance(envelope, MessageUpdated):
                return self._apply_update(envelope.message)
            if isinstance(envelope, Ready):
                log_event(logger, "processor.ready", level=logging.DEBUG)
                return []
            if envelope.type in _INFORMATIONAL_TYPES:
                log_event(logger, "processor.informational", level=logging.DEBUG, type=envelope.type)
            else:
                log_event(logger, "processor.unknown_type", type=envelope.type)
            return []
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "processor.failed", level=logging.ERROR, error=str(exc))
            self._emitter.emit("error", exc)
            return []

    def _apply_snapshot(self, snapshot: StateSnapshot) -> List[Message]:
        previous_mode = self._store.get_current_mode()
        if snapshot.mode and snapshot.mode != previous_mode:
            self._store.set_current_mode(snapshot.mode)
            self._emitter.emit("modeChanged", previous_mode, snapshot.mode)
        if snapshot.engine_state and snapshot.engine_state != self._store.state.engine_state:
            self._store.set_engine_state(snapshot.engine_state)

        prior: Dict[int, Message] = {message.ts: message for message in self._store.get_messages()}
        previous_state = self._store.get_agent_state()
        self._store.merge(snapshot.messages)
        touched = [message for message in snapshot.messages if prior.get(message.ts) != message]

        if prior and not snapshot.messages:
            self._emitter.emit("taskCleared")
        if touched and touched[-1] is snapshot.messages[-1]:
            self._emitter.emit("message", snapshot.messages[-1])
        self._emit_state_events(previous_state)
        return touched

    def _apply_update(self, message: Message) -> List[Message]:
        existing = self._store.find_by_ts(message.ts)
        if existing == message:
            return []
        previous_state = self._store.get_agent_state()
        self._store.merge_one(message)
        self._emitter.emit("messageUpdated", message)
        self._emit_state_events(previous_state)
        return [message]

    def _emit_state_events(self, previous: SessionStateInfo) -> None:
        current = self._store.get_agent_state()
        if not is_significant_state_change(previous, current) and not task_completed(previous, current):
            return
        if is_significant_state_change(previous, current):
            log_event(
                logger,
                "processor.state_change",
                level=logging.DEBUG,
                previous=previous.state.value,
                current=current.state.value,
                ask=current.current_ask,
            )
            self._emitter.emit("stateChange", StateChange(previous, current))
        if transitioned_to_waiting(previous, current):
            self._emitter.emit("waitingForInput", current, self._store.get_pending_ask())
        if transitioned_to_running(previous, current):
            self._emitter.emit("resumedRunning", current)
        if streaming_started(previous, current):
            self._emitter.emit("streamingStarted", current)
        if streaming_ended(previous, current):
            self._emitter.emit("streamingEnded", current)
        if task_completed(previous, current):
            last = self._store.get_last_message()
            self._emitter.emit("taskCompleted", TaskCompletion(task_succeeded(last), current, last))


__all__ = ["MessageProcessor", "StateChange", "TaskCompletion"]

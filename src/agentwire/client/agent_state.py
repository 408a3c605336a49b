"""Pure derivation of the session state from the engine message history."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from agentwire.client.messages import AskType, Message


class SessionState(str, Enum):
    NO_TASK = "NO_TASK"
    RUNNING = "RUNNING"
    STREAMING = "STREAMING"
    WAITING_FOR_INPUT = "WAITING_FOR_INPUT"
    IDLE = "IDLE"
    RESUMABLE = "RESUMABLE"


class RequiredAction(str, Enum):
    NONE = "none"
    START_TASK = "start_task"
    ANSWER = "answer"
    APPROVE = "approve"
    RETRY_OR_NEW_TASK = "retry_or_new_task"
    RESUME_OR_NEW_TASK = "resume_or_new_task"
    NEW_TASK = "new_task"


@dataclass(frozen=True)
class SessionStateInfo:
    state: SessionState
    is_waiting_for_input: bool
    is_running: bool
    is_streaming: bool
    current_ask: str | None
    required_action: RequiredAction
    description: str
    last_message_ts: int | None = None


@dataclass(frozen=True)
class _AskRule:
    state: SessionState
    action: RequiredAction
    description: str


_ASK_RULES: dict[AskType, _AskRule] = {
    AskType.FOLLOWUP: _AskRule(SessionState.WAITING_FOR_INPUT, RequiredAction.ANSWER, "Waiting for an answer to a question"),
    AskType.COMMAND: _AskRule(SessionState.WAITING_FOR_INPUT, RequiredAction.APPROVE, "Waiting for approval to run a command"),
    AskType.COMMAND_OUTPUT: _AskRule(
        SessionState.WAITING_FOR_INPUT, RequiredAction.APPROVE, "Waiting to continue while a command runs"
    ),
    AskType.TOOL: _AskRule(SessionState.WAITING_FOR_INPUT, RequiredAction.APPROVE, "Waiting for approval to use a tool"),
    AskType.BROWSER_ACTION_LAUNCH: _AskRule(
        SessionState.WAITING_FOR_INPUT, RequiredAction.APPROVE, "Waiting for approval to launch the browser"
    ),
    AskType.USE_MCP_SERVER: _AskRule(
        SessionState.WAITING_FOR_INPUT, RequiredAction.APPROVE, "Waiting for approval to use an MCP server"
    ),
    AskType.COMPLETION_RESULT: _AskRule(SessionState.IDLE, RequiredAction.NEW_TASK, "Task completed"),
    AskType.API_REQ_FAILED: _AskRule(SessionState.IDLE, RequiredAction.RETRY_OR_NEW_TASK, "API request failed"),
    AskType.MISTAKE_LIMIT_REACHED: _AskRule(
        SessionState.IDLE, RequiredAction.RETRY_OR_NEW_TASK, "Mistake limit reached"
    ),
    AskType.RESUME_TASK: _AskRule(SessionState.RESUMABLE, RequiredAction.RESUME_OR_NEW_TASK, "Task can be resumed"),
    AskType.RESUME_COMPLETED_TASK: _AskRule(
        SessionState.RESUMABLE, RequiredAction.RESUME_OR_NEW_TASK, "Completed task can be resumed"
    ),
}

_NO_TASK = SessionStateInfo(
    state=SessionState.NO_TASK,
    is_waiting_for_input=False,
    is_running=False,
    is_streaming=False,
    current_ask=None,
    required_action=RequiredAction.START_TASK,
    description="No active task",
)


def _streaming(message: Message, pending: Message | None) -> SessionStateInfo:
    label = message.subtype or message.kind
    return SessionStateInfo(
        state=SessionState.STREAMING,
        is_waiting_for_input=False,
        is_running=True,
        is_streaming=True,
        current_ask=pending.subtype if pending is not None else None,
        required_action=RequiredAction.NONE,
        description=f"Streaming {label}",
        last_message_ts=message.ts,
    )


def _running(message: Message, description: str = "Engine is working") -> SessionStateInfo:
    return SessionStateInfo(
        state=SessionState.RUNNING,
        is_waiting_for_input=False,
        is_running=True,
        is_streaming=False,
        current_ask=None,
        required_action=RequiredAction.NONE,
        description=description,
        last_message_ts=message.ts,
    )


def _open_stream_before(messages: Sequence[Message]) -> Message | None:
    for message in reversed(messages[:-1]):
        if message.partial:
            return message
        if message.is_ask:
            return None
    return None


def derive_state(messages: Sequence[Message]) -> SessionStateInfo:
    """Derive the session state from an ordered message history.

    Only the tail of the history matters: the last message is either still
    streaming, a complete ask the engine is blocked on, or something that
    means the engine is busy. An ask followed by any later message has been
    answered. When a message since the previous ask is still partial, streaming
    wins over the pending ask so output is finished before input is requested.
    """
    if not messages:
        return _NO_TASK

    last = messages[-1]
    if last.partial:
        return _streaming(last, None)

    if not last.is_ask:
        return _running(last)

    open_stream = _open_stream_before(messages)
    if open_stream is not None:
        return _streaming(open_stream, last)

    ask_type = last.ask_type
    rule = _ASK_RULES.get(ask_type) if ask_type is not None else None
    if rule is None:
        return _running(last, f"Engine is working (unrecognized ask: {last.subtype or 'unknown'})")

    return SessionStateInfo(
        state=rule.state,
        is_waiting_for_input=True,
        is_running=False,
        is_streaming=False,
        current_ask=last.subtype,
        required_action=rule.action,
        description=rule.description,
        last_message_ts=last.ts,
    )


__all__ = ["RequiredAction", "SessionState", "SessionStateInfo", "derive_state"]

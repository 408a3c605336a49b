"""Engine message model, inbound envelope parsing and outbound message builders.

The engine speaks in ``say`` messages (what it is doing) and ``ask`` messages
(what it needs). Every message carries a ``ts`` that identifies it across
repeated partial snapshots; a message is final once ``partial`` is false.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from agentwire.log_utils import log_event

logger = logging.getLogger(__name__)

MessageKind = Literal["say", "ask"]
ResponseKind = Literal["approve", "reject", "text"]
TerminalOperation = Literal["continue", "abort"]


class SayType(str, Enum):
    TEXT = "text"
    REASONING = "reasoning"
    ERROR = "error"
    COMPLETION_RESULT = "completion_result"
    API_REQ_STARTED = "api_req_started"
    API_REQ_FINISHED = "api_req_finished"
    API_REQ_RETRIED = "api_req_retried"
    COMMAND_OUTPUT = "command_output"
    USER_FEEDBACK = "user_feedback"
    TOOL = "tool"
    CHECKPOINT_SAVED = "checkpoint_saved"
    MCP_SERVER_RESPONSE = "mcp_server_response"
    BROWSER_ACTION = "browser_action"
    BROWSER_ACTION_RESULT = "browser_action_result"
    SUBTASK_RESULT = "subtask_result"


class AskType(str, Enum):
    FOLLOWUP = "followup"
    COMMAND = "command"
    COMMAND_OUTPUT = "command_output"
    TOOL = "tool"
    BROWSER_ACTION_LAUNCH = "browser_action_launch"
    USE_MCP_SERVER = "use_mcp_server"
    API_REQ_FAILED = "api_req_failed"
    MISTAKE_LIMIT_REACHED = "mistake_limit_reached"
    COMPLETION_RESULT = "completion_result"
    RESUME_TASK = "resume_task"
    RESUME_COMPLETED_TASK = "resume_completed_task"


_SAY_TYPES = {item.value: item for item in SayType}
_ASK_TYPES = {item.value: item for item in AskType}


class Message(BaseModel):
    """One snapshot of an engine message."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    ts: int
    kind: MessageKind
    subtype: str = ""
    text: str = ""
    partial: bool = False

    @model_validator(mode="before")
    @classmethod
    def _coerce_wire_shape(cls, value: Any) -> Any:
        """Accept the engine wire shape ``{type, say|ask, ...}`` and null fields."""
        if not isinstance(value, dict):
            return value
        data = dict(value)
        wire_type = data.get("type")
        if "kind" not in data and wire_type in ("say", "ask"):
            data["kind"] = wire_type
            if "subtype" not in data:
                data["subtype"] = data.get(wire_type)
        for key in ("subtype", "text"):
            if key in data and data[key] is None:
                data[key] = ""
        if data.get("partial") is None:
            data["partial"] = False
        return data

    @property
    def is_ask(self) -> bool:
        return self.kind == "ask"

    @property
    def is_say(self) -> bool:
        return self.kind == "say"

    @property
    def say_type(self) -> SayType | None:
        """Known say subtype, or None for asks and unknown subtypes."""
        if self.kind != "say":
            return None
        return _SAY_TYPES.get(self.subtype)

    @property
    def ask_type(self) -> AskType | None:
        """Known ask subtype, or None for says and unknown subtypes."""
        if self.kind != "ask":
            return None
        return _ASK_TYPES.get(self.subtype)

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ts": self.ts, "type": self.kind, self.kind: self.subtype, "text": self.text}
        if self.partial:
            payload["partial"] = True
        return payload


def parse_message(item: Any) -> Message | None:
    """Validate one raw message, returning None (and logging) when malformed."""
    if isinstance(item, Message):
        return item
    try:
        return Message.model_validate(item)
    except ValidationError as exc:
        log_event(logger, "message.invalid", level=logging.WARNING, errors=exc.error_count())
        return None


def parse_messages(items: Iterable[Any]) -> List[Message]:
    parsed: List[Message] = []
    for item in items:
        message = parse_message(item)
        if message is not None:
            parsed.append(message)
    return parsed


@dataclass(frozen=True)
class StateSnapshot:
    """Full-state envelope: the complete message list plus engine state fields."""

    messages: tuple[Message, ...]
    mode: str | None = None
    engine_state: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MessageUpdated:
    """Incremental envelope carrying a single message to upsert by ts."""

    message: Message


@dataclass(frozen=True)
class Ready:
    """Readiness signal raised once by the engine before accepting input."""


@dataclass(frozen=True)
class OtherEnvelope:
    """Any envelope type this layer does not act on."""

    type: str
    payload: Dict[str, Any] = field(default_factory=dict)


InboundEnvelope = Union[StateSnapshot, MessageUpdated, Ready, OtherEnvelope]


def parse_envelope(raw: Any) -> InboundEnvelope | None:
    """Parse an inbound engine envelope from JSON text or a decoded dict.

    Returns None for anything that cannot be interpreted; the caller treats
    that as a protocol anomaly and moves on.
    """
    data = raw
    if isinstance(raw, (bytes, bytearray)):
        data = raw.decode("utf-8", errors="replace")
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            log_event(logger, "envelope.invalid_json", level=logging.WARNING, size=len(data))
            return None
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        log_event(logger, "envelope.invalid", level=logging.WARNING)
        return None

    kind = data["type"]
    if kind == "state":
        state = data.get("state")
        if not isinstance(state, dict):
            log_event(logger, "envelope.state_missing", level=logging.WARNING)
            return None
        items = state.get("messages")
        if items is None:
            items = state.get("clineMessages")
        if not isinstance(items, list):
            items = []
        mode = state.get("mode")
        rest = {key: value for key, value in state.items() if key not in ("messages", "clineMessages")}
        return StateSnapshot(
            messages=tuple(parse_messages(items)),
            mode=mode if isinstance(mode, str) else None,
            engine_state=rest,
        )
    if kind == "messageUpdated":
        item = data.get("message")
        if item is None:
            item = data.get("clineMessage")
        message = parse_message(item)
        if message is None:
            return None
        return MessageUpdated(message=message)
    if kind == "ready":
        return Ready()
    return OtherEnvelope(type=kind, payload=data)


@dataclass(frozen=True)
class AskResponse:
    """A response to a surfaced ask."""

    kind: ResponseKind
    text: str | None = None

    @classmethod
    def approve(cls, text: str | None = None) -> "AskResponse":
        return cls("approve", text)

    @classmethod
    def reject(cls, text: str | None = None) -> "AskResponse":
        return cls("reject", text)

    @classmethod
    def with_text(cls, text: str) -> "AskResponse":
        return cls("text", text)

    def to_wire(self) -> Dict[str, Any]:
        button = {
            "approve": "yesButtonClicked",
            "reject": "noButtonClicked",
            "text": "messageResponse",
        }[self.kind]
        payload: Dict[str, Any] = {"type": "askResponse", "askResponse": button}
        if self.text is not None:
            payload["text"] = self.text
        return payload


def new_task(text: str, images: list[str] | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"type": "newTask", "text": text}
    if images:
        payload["images"] = list(images)
    return payload


def ask_response(response: AskResponse) -> Dict[str, Any]:
    return response.to_wire()


def cancel_task() -> Dict[str, Any]:
    return {"type": "cancelTask"}


def clear_task() -> Dict[str, Any]:
    return {"type": "clearTask"}


def update_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "updateSettings", "updatedSettings": dict(settings)}


def set_mode(mode: str) -> Dict[str, Any]:
    return {"type": "mode", "text": mode}


def terminal_operation(operation: TerminalOperation) -> Dict[str, Any]:
    return {"type": "terminalOperation", "terminalOperation": operation}


class FollowupSuggestion(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    answer: str
    mode: str | None = None


class FollowupQuestion(BaseModel):
    """Parsed ``followup`` ask payload."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    question: str = ""
    suggestions: List[FollowupSuggestion] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _coerce_payload(cls, value: Any) -> Any:
        """Accept raw ask text: JSON ``{question, suggest}`` or a plain question."""
        if isinstance(value, str):
            text = value
            try:
                value = json.loads(text) if text.strip() else {}
            except ValueError:
                return {"question": text}
            if not isinstance(value, dict):
                return {"question": text}
        if not isinstance(value, dict):
            return value
        raw_suggest = value.get("suggestions", value.get("suggest"))
        suggestions: list[dict[str, Any]] = []
        if isinstance(raw_suggest, list):
            for item in raw_suggest:
                if isinstance(item, str):
                    suggestions.append({"answer": item})
                elif isinstance(item, dict) and isinstance(item.get("answer"), str):
                    mode = item.get("mode")
                    suggestions.append({"answer": item["answer"], "mode": mode if isinstance(mode, str) else None})
        question = value.get("question")
        return {"question": question if isinstance(question, str) else "", "suggestions": suggestions}

    @classmethod
    def from_text(cls, text: str) -> "FollowupQuestion":
        try:
            return cls.model_validate(text)
        except ValidationError as exc:
            log_event(logger, "followup.invalid", level=logging.WARNING, errors=exc.error_count())
            return cls(question=text)

    @property
    def default_answer(self) -> str:
        return self.suggestions[0].answer if self.suggestions else ""

    def resolve_answer(self, raw: str) -> str:
        """Map a numeric selection (1-based) to its suggestion; other text is returned stripped."""
        choice = raw.strip()
        if choice.isdigit():
            index = int(choice) - 1
            if 0 <= index < len(self.suggestions):
                return self.suggestions[index].answer
        return choice


__all__ = [
    "AskResponse",
    "AskType",
    "FollowupQuestion",
    "FollowupSuggestion",
    "InboundEnvelope",
    "Message",
    "MessageKind",
    "MessageUpdated",
    "OtherEnvelope",
    "Ready",
    "ResponseKind",
    "SayType",
    "StateSnapshot",
    "ask_response",
    "cancel_task",
    "clear_task",
    "new_task",
    "parse_envelope",
    "parse_message",
    "parse_messages",
    "set_mode",
    "terminal_operation",
    "update_settings",
]

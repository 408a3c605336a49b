"""Session protocol client: state derivation, streaming output and ask handling."""

from __future__ import annotations

from agentwire.client.agent_state import RequiredAction, SessionState, SessionStateInfo, derive_state
from agentwire.client.messages import AskResponse, Message
from agentwire.client.session import AgentSession, TaskResult

__all__ = [
    "AgentSession",
    "AskResponse",
    "Message",
    "RequiredAction",
    "SessionState",
    "SessionStateInfo",
    "TaskResult",
    "derive_state",
]

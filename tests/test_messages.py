from __future__ import annotations

import json

from agentwire.client.messages import (
    AskResponse,
    AskType,
    FollowupQuestion,
    Message,
    MessageUpdated,
    OtherEnvelope,
    Ready,
    SayType,
    StateSnapshot,
    cancel_task,
    clear_task,
    new_task,
    parse_envelope,
    parse_message,
    set_mode,
    terminal_operation,
    update_settings,
)


def test_message_accepts_engine_wire_shape() -> None:
    message = Message.model_validate({"ts": 5, "type": "say", "say": "text", "text": "hi", "partial": True, "images": []})

    assert message.kind == "say"
    assert message.subtype == "text"
    assert message.partial is True
    assert message.say_type is SayType.TEXT
    assert message.ask_type is None


def test_message_null_fields_default() -> None:
    message = Message.model_validate({"ts": 1, "type": "ask", "ask": "command", "text": None, "partial": None})

    assert message.text == ""
    assert message.partial is False
    assert message.ask_type is AskType.COMMAND


def test_unknown_subtype_has_no_enum() -> None:
    message = Message(ts=1, kind="ask", subtype="brand_new_ask")
    assert message.ask_type is None
    assert message.is_ask


def test_to_wire_round_trips_through_parse() -> None:
    message = Message(ts=7, kind="ask", subtype="followup", text="q", partial=True)
    assert parse_message(message.to_wire()) == message


def test_parse_message_rejects_missing_ts() -> None:
    assert parse_message({"type": "say", "say": "text"}) is None
    assert parse_message("not a message") is None


def test_parse_envelope_invalid_inputs_return_none() -> None:
    assert parse_envelope("{not json") is None
    assert parse_envelope(json.dumps([1, 2])) is None
    assert parse_envelope({"state": {}}) is None
    assert parse_envelope({"type": "state", "state": "nope"}) is None


def test_parse_state_envelope_drops_invalid_messages() -> None:
    raw = json.dumps(
        {
            "type": "state",
            "state": {
                "clineMessages": [
                    {"ts": 1, "type": "say", "say": "text", "text": "a"},
                    {"type": "say", "say": "text"},
                    {"ts": 2, "type": "ask", "ask": "command", "text": "ls"},
                ],
                "mode": "code",
                "apiConfiguration": {"provider": "x"},
            },
        }
    )

    envelope = parse_envelope(raw)

    assert isinstance(envelope, StateSnapshot)
    assert [message.ts for message in envelope.messages] == [1, 2]
    assert envelope.mode == "code"
    assert envelope.engine_state == {"mode": "code", "apiConfiguration": {"provider": "x"}}


def test_parse_message_updated_and_other_types() -> None:
    updated = parse_envelope({"type": "messageUpdated", "clineMessage": {"ts": 3, "type": "say", "say": "error"}})
    assert isinstance(updated, MessageUpdated)
    assert updated.message.ts == 3

    assert parse_envelope({"type": "messageUpdated", "message": {"type": "say"}}) is None
    assert isinstance(parse_envelope(b'{"type": "ready"}'), Ready)

    other = parse_envelope({"type": "action", "action": "didBecomeVisible"})
    assert isinstance(other, OtherEnvelope)
    assert other.type == "action"


def test_ask_response_wire_format() -> None:
    assert AskResponse.approve().to_wire() == {"type": "askResponse", "askResponse": "yesButtonClicked"}
    assert AskResponse.reject().to_wire() == {"type": "askResponse", "askResponse": "noButtonClicked"}
    assert AskResponse.with_text("A").to_wire() == {
        "type": "askResponse",
        "askResponse": "messageResponse",
        "text": "A",
    }


def test_outbound_builders() -> None:
    assert new_task("fix it") == {"type": "newTask", "text": "fix it"}
    assert new_task("look", ["data:image/png;base64,xx"])["images"] == ["data:image/png;base64,xx"]
    assert cancel_task() == {"type": "cancelTask"}
    assert clear_task() == {"type": "clearTask"}
    assert update_settings({"autoApprovalEnabled": False}) == {
        "type": "updateSettings",
        "updatedSettings": {"autoApprovalEnabled": False},
    }
    assert set_mode("architect") == {"type": "mode", "text": "architect"}
    assert terminal_operation("abort") == {"type": "terminalOperation", "terminalOperation": "abort"}


def test_followup_question_from_json() -> None:
    text = json.dumps({"question": "Pick one", "suggest": [{"answer": "A", "mode": "code"}, "B", {"nope": 1}]})

    question = FollowupQuestion.from_text(text)

    assert question.question == "Pick one"
    assert [s.answer for s in question.suggestions] == ["A", "B"]
    assert question.suggestions[0].mode == "code"
    assert question.default_answer == "A"


def test_followup_question_ignores_non_string_mode() -> None:
    text = json.dumps({"question": "Pick", "suggest": [{"answer": "A", "mode": 123}, {"answer": "B", "mode": None}]})

    question = FollowupQuestion.from_text(text)

    assert [s.answer for s in question.suggestions] == ["A", "B"]
    assert [s.mode for s in question.suggestions] == [None, None]


def test_followup_question_plain_text() -> None:
    question = FollowupQuestion.from_text("What now?")

    assert question.question == "What now?"
    assert question.suggestions == []
    assert question.default_answer == ""


def test_followup_resolve_answer() -> None:
    question = FollowupQuestion.from_text(json.dumps({"question": "q", "suggest": ["A", "B"]}))

    assert question.resolve_answer(" 2 ") == "B"
    assert question.resolve_answer("3") == "3"
    assert question.resolve_answer("0") == "0"
    assert question.resolve_answer("  something else ") == "something else"

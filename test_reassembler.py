"""Tests for the client stream reassembler."""

from __future__ import annotations

import pytest

from talk2ai.chat.models import (
    Conversation,
    ErrorEvent,
    FinishEvent,
    ReasoningDeltaEvent,
    TextDeltaEvent,
    ToolCallDeltaEvent,
    ToolResultEvent,
    TurnFinalizedError,
)
from talk2ai.chat.sse import encode_event
from talk2ai.frontend.reassembler import StreamReassembler, decode_envelope, looks_structured


def wire(*events) -> bytes:
    return "".join(encode_event(e) for e in events).encode()


@pytest.fixture
def conversation() -> Conversation:
    conversation = Conversation()
    conversation.add_user_turn("Hi")
    return conversation


def test_text_deltas_build_one_turn(conversation):
    updates = []
    reassembler = StreamReassembler(conversation, on_update=updates.append)

    reassembler.feed(wire(TextDeltaEvent(delta="Hel")))
    reassembler.feed(wire(TextDeltaEvent(delta="lo"), FinishEvent()))

    assert [t.role for t in conversation.turns] == ["user", "assistant"]
    assert conversation.turns[-1].content == "Hello"
    assert conversation.turns[-1].finalized
    assert reassembler.finished
    # one render per read, always the same turn
    assert len(updates) == 2
    assert {t.id for t in updates} == {reassembler.turn_id}


def test_envelope_split_across_reads(conversation):
    body = wire(TextDeltaEvent(delta="Hello"), FinishEvent())
    reassembler = StreamReassembler(conversation)

    for i in range(0, len(body), 7):
        reassembler.feed(body[i : i + 7])

    assert reassembler.content == "Hello"
    assert reassembler.finished


def test_reasoning_is_not_shown(conversation):
    reassembler = StreamReassembler(conversation)

    reassembler.feed(wire(ReasoningDeltaEvent(delta="let me think"), TextDeltaEvent(delta="42"), FinishEvent()))

    assert conversation.turns[-1].content == "42"


def test_reasoning_only_response_creates_no_turn(conversation):
    reassembler = StreamReassembler(conversation)

    reassembler.feed(wire(ReasoningDeltaEvent(delta="hmm"), FinishEvent()))

    assert reassembler.turn is None
    assert len(conversation.turns) == 1


def test_tool_activity_is_appended(conversation):
    reassembler = StreamReassembler(conversation)

    reassembler.feed(
        wire(
            ToolCallDeltaEvent(delta='{"query": "weather"}'),
            ToolResultEvent(result={"temp": 21}),
            TextDeltaEvent(delta="It is mild."),
            FinishEvent(),
        )
    )

    assert reassembler.content == '{"query": "weather"}\n\n[Search results: {"temp": 21}]\n\nIt is mild.'


def test_empty_tool_result_is_skipped(conversation):
    reassembler = StreamReassembler(conversation)

    reassembler.feed(wire(ToolResultEvent(result=None), TextDeltaEvent(delta="ok"), FinishEvent()))

    assert reassembler.content == "ok"


def test_error_is_surfaced_not_appended(conversation):
    errors = []
    reassembler = StreamReassembler(conversation, on_error=errors.append)

    reassembler.feed(wire(ErrorEvent(error="Rate limit reached."), TextDeltaEvent(delta="never")))

    assert errors == ["Rate limit reached."]
    assert reassembler.error == "Rate limit reached."
    assert reassembler.finished
    assert len(conversation.turns) == 1


def test_error_after_text_keeps_partial_turn(conversation):
    errors = []
    reassembler = StreamReassembler(conversation, on_error=errors.append)

    reassembler.feed(wire(TextDeltaEvent(delta="partial"), ErrorEvent(error="boom"), FinishEvent()))

    assert conversation.turns[-1].content == "partial"
    assert conversation.turns[-1].finalized
    assert errors == ["boom"]


def test_done_marker_finishes(conversation):
    reassembler = StreamReassembler(conversation)

    reassembler.feed(wire(TextDeltaEvent(delta="a")) + b"data: [DONE]\n\n" + wire(TextDeltaEvent(delta="b")))

    assert reassembler.content == "a"
    assert reassembler.finished


def test_unknown_envelope_types_are_ignored(conversation):
    reassembler = StreamReassembler(conversation)

    reassembler.feed(b'data: {"type":"start"}\n\ndata: {"type":"text-start","id":"1"}\n\n')
    reassembler.feed(wire(TextDeltaEvent(delta="x"), FinishEvent()))

    assert reassembler.content == "x"


def test_malformed_structured_payload_is_skipped(conversation):
    reassembler = StreamReassembler(conversation)

    reassembler.feed(b'data: {"type": "text-del\n\n')
    reassembler.feed(b'data: {"type": "text-delta"}\n\n')
    reassembler.feed(wire(TextDeltaEvent(delta="fine"), FinishEvent()))

    assert reassembler.content == "fine"


def test_literal_text_payloads_are_appended(conversation):
    reassembler = StreamReassembler(conversation)

    reassembler.feed(b"data: plain words\n\nraw line\n")
    reassembler.close()

    assert reassembler.content == "plain wordsraw line"
    assert conversation.turns[-1].finalized


def test_consecutive_raw_lines_keep_line_breaks(conversation):
    reassembler = StreamReassembler(conversation)

    reassembler.feed(b"first line\nsecond line\n")
    reassembler.close()

    assert reassembler.content == "first line\nsecond line"


def test_complete_text_envelope_is_appended(conversation):
    reassembler = StreamReassembler(conversation)

    reassembler.feed(b'data: {"type":"text","content":"Whole answer"}\n\n')
    reassembler.feed(b'data: {"type":"text","content":3}\n\n')
    reassembler.feed(wire(FinishEvent()))

    assert reassembler.content == "Whole answer"
    assert conversation.turns[-1].finalized


def test_plain_text_mode(conversation):
    reassembler = StreamReassembler(conversation, plain_text=True)
    body = "Hello wörld".encode()
    split = body.index("ö".encode()) + 1

    reassembler.feed(body[:split])
    reassembler.feed(body[split:])
    reassembler.close()

    assert conversation.turns[-1].content == "Hello wörld"
    assert conversation.turns[-1].finalized


def test_abrupt_close_finalizes(conversation):
    reassembler = StreamReassembler(conversation)

    reassembler.feed(wire(TextDeltaEvent(delta="cut")))
    reassembler.feed(b'data: {"type":"text-delta","delta":" off"}')
    reassembler.close()

    assert conversation.turns[-1].content == "cut off"
    assert conversation.turns[-1].finalized


def test_finished_turn_is_immutable(conversation):
    reassembler = StreamReassembler(conversation)
    reassembler.feed(wire(TextDeltaEvent(delta="done"), FinishEvent()))

    reassembler.feed(wire(TextDeltaEvent(delta=" more")))

    assert conversation.turns[-1].content == "done"
    with pytest.raises(TurnFinalizedError):
        conversation.update_assistant_turn(reassembler.turn_id, "changed")


def test_envelope_detection():
    assert decode_envelope('{"type": "text-delta", "delta": "x"}') == {"type": "text-delta", "delta": "x"}
    assert decode_envelope('{"delta": "x"}') is None
    assert decode_envelope('{"type": 3}') is None
    assert decode_envelope("[1, 2]") is None
    assert decode_envelope("hello") is None

    assert looks_structured(' {"broken"')
    assert looks_structured("[1,")
    assert not looks_structured("hello {world}")

"""
Tests for the wire log and live tap.
Run with: pytest tests/test_wiretap.py
"""

import json

import pytest

from switchboard import events
from switchboard.events import EventBus
from switchboard.storage.models import Message
from switchboard.wiretap import TapRenderer, WireLog, clip, live_tap


def _read(path):
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


def test_wire_log_records_message_events(tmp_path):
    """Every messageAdded on the bus becomes one JSONL line keyed on the message id."""
    path = tmp_path / "wire.jsonl"
    bus = EventBus()
    wire = WireLog(str(path))
    wire.attach(bus)

    question = Message(content="hi")
    reply = Message(content="hello", type="assistant", metadata={
        "model": "gpt-4", "tokens": 7, "provider": "openai", "retries": 1, "processing_time_ms": 812.4,
    })
    bus.emit(events.MESSAGE_ADDED, message=question, conversation_id="conv_abc")
    bus.emit(events.MESSAGE_ADDED, message=reply, conversation_id="conv_abc")
    wire.close()

    first, second = _read(path)
    assert first["id"] == question.id
    assert first["type"] == "user"
    assert first["conv"] == "conv_abc"
    assert "provider" not in first
    assert second["id"] == reply.id
    assert second["provider"] == "openai"
    assert second["retries"] == 1
    assert second["ms"] == 812.4
    assert second["tokens"] == 7


@pytest.mark.asyncio
async def test_wire_log_takes_titles_from_store(tmp_path, bus, store):
    path = tmp_path / "wire.jsonl"
    wire = WireLog(str(path))
    wire.attach(bus, store)
    conv = await store.create_conversation("Deploy checklist")

    bus.emit(events.MESSAGE_ADDED, message=Message(content="hi"), conversation_id=conv.id)
    bus.emit(events.MESSAGE_ADDED, message=Message(content="?"), conversation_id="conv_gone")
    wire.close()

    entries = _read(path)
    assert entries[0]["title"] == "Deploy checklist"
    assert "title" not in entries[1]


def test_error_messages_carry_exception_class(tmp_path):
    path = tmp_path / "wire.jsonl"
    wire = WireLog(str(path))
    wire.record(Message(content="Error: all down", type="error",
                        metadata={"error": "AllProvidersExhaustedError"}), "conv_1")
    wire.close()

    assert _read(path)[0]["error"] == "AllProvidersExhaustedError"


def test_close_detaches_from_bus(tmp_path):
    path = tmp_path / "wire.jsonl"
    bus = EventBus()
    wire = WireLog(str(path))
    wire.attach(bus)
    wire.close()

    bus.emit(events.MESSAGE_ADDED, message=Message(content="late"), conversation_id="c")
    assert bus.subscriber_count == 0
    assert not path.exists() or _read(path) == []


def test_clip_keeps_head_and_tail():
    text = "A" * 1500 + "B" * 1500
    clipped = clip(text)
    assert clipped.startswith("A" * 1000)
    assert clipped.endswith("B" * 1000)
    assert "[... 1000 chars cut ...]" in clipped
    assert clip("short") == "short"


def test_renderer_groups_by_conversation():
    renderer = TapRenderer()
    first = renderer.render({"conv": "conv_1", "title": "Intro", "type": "user",
                             "ts": "2024-03-01T12:00:05+00:00", "chars": 2, "content": "hi"})
    second = renderer.render({"conv": "conv_1", "type": "assistant", "ts": "2024-03-01T12:00:06+00:00",
                              "provider": "openai", "model": "gpt-4", "ms": 812.4, "retries": 2,
                              "chars": 5, "content": "hello"})
    third = renderer.render({"conv": "conv_2", "type": "error", "error": "AllProvidersExhaustedError",
                             "content": "Error: nope"})

    assert "Intro" in first and "12:00:05" in first
    assert "conv_1" not in second
    assert "openai/gpt-4" in second
    assert "812ms" in second
    assert "2 retries" in second
    assert "conv_2" in third
    assert "AllProvidersExhaustedError" in third


def test_renderer_raw():
    entry = {"conv": "c", "type": "user", "content": "hi"}
    assert TapRenderer(raw=True).render(entry) == json.dumps(entry)


def test_live_tap_no_follow(tmp_path, capsys):
    path = tmp_path / "wire.jsonl"
    wire = WireLog(str(path))
    wire.record(Message(content="first question"), "conv_1")
    wire.record(Message(content="an answer", type="assistant"), "conv_1")
    wire.record(Message(content="Error: nope", type="error"), "conv_1")
    wire.close()
    with open(path, "a") as f:
        f.write("not json\n")

    live_tap(str(path), follow=False, last_n=2, role_filter="assistant")
    out = capsys.readouterr().out

    assert "an answer" in out
    assert "first question" not in out
    assert "Error: nope" not in out


def test_live_tap_missing_file(tmp_path, capsys):
    live_tap(str(tmp_path / "none.jsonl"), follow=False)
    assert "No wire log found" in capsys.readouterr().out

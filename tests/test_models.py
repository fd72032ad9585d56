"""
Tests for storage models and conversation export.
Run with: pytest tests/test_models.py
"""

import json

import pytest

from switchboard.export import export_conversation, import_conversation
from switchboard.storage.models import (
    Conversation,
    ConversationSettings,
    Message,
)


def _sample_conversation():
    conv = Conversation(title="Linked lists", created_at="2024-03-01T12:00:00+00:00")
    conv.messages = [
        Message(content="How do I reverse one?", type="user", timestamp="2024-03-01T12:00:05+00:00"),
        Message(content="Walk it with three pointers.", type="assistant",
                timestamp="2024-03-01T12:00:09+00:00", metadata={"model": "gpt-4", "tokens": 12}),
        Message(content="Error: upstream down", type="error", timestamp="2024-03-01T12:01:00+00:00"),
    ]
    conv.metadata.message_count = 3
    conv.metadata.tags = {"cs", "algorithms"}
    return conv


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------

def test_message_defaults():
    """New messages get an id, timestamp and zeroed metadata."""
    m = Message(content="hi")
    assert m.id.startswith("msg_")
    assert m.type == "user"
    assert m.timestamp
    assert m.metadata == {"tokens": 0, "model": "", "processing_time_ms": 0, "retries": 0}


def test_message_ids_unique():
    """Message ids don't collide."""
    assert len({Message().id for _ in range(200)}) == 200


def test_message_rejects_unknown_type():
    """Only user/assistant/system/error are valid."""
    with pytest.raises(ValueError):
        Message(content="x", type="tool")


def test_message_role_only_for_dialogue():
    """System and error messages have no chat role."""
    assert Message(type="user").role == "user"
    assert Message(type="assistant").role == "assistant"
    assert Message(type="system").role is None
    assert Message(type="error").role is None


def test_message_metadata_merges_over_defaults():
    """Caller metadata overrides defaults and keeps extra keys."""
    m = Message(content="x", type="assistant", metadata={"model": "m", "provider": "openai"})
    assert m.metadata["model"] == "m"
    assert m.metadata["provider"] == "openai"
    assert m.metadata["tokens"] == 0


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def test_settings_defaults():
    s = ConversationSettings()
    assert (s.model, s.temperature, s.max_tokens, s.system_prompt) == ("gpt-4", 0.7, 2000, "")


def test_settings_merged_ignores_unknown_and_none():
    """merged() applies known keys only and leaves the original untouched."""
    s = ConversationSettings()
    m = s.merged({"temperature": 0.1, "model": None, "bogus": 1})
    assert m.temperature == 0.1
    assert m.model == "gpt-4"
    assert s.temperature == 0.7
    assert not hasattr(m, "bogus")


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

def test_conversation_defaults():
    c = Conversation()
    assert c.id.startswith("conv_")
    assert c.messages == []
    assert c.metadata.message_count == 0
    assert c.metadata.tags == set()
    assert c.title_locked is False


def test_conversation_from_dict_rederives_message_count():
    """A stale persisted count is replaced by len(messages)."""
    data = _sample_conversation().to_dict()
    data["metadata"]["message_count"] = 999
    restored = Conversation.from_dict(data)
    assert restored.metadata.message_count == 3


def test_conversation_from_dict_ignores_unknown_settings():
    data = Conversation().to_dict()
    data["settings"]["legacy_flag"] = True
    restored = Conversation.from_dict(data)
    assert restored.settings == ConversationSettings()


def test_to_openai_format_skips_non_dialogue():
    """Error and system messages aren't part of the chat history."""
    conv = _sample_conversation()
    assert conv.to_openai_format() == [
        {"role": "user", "content": "How do I reverse one?"},
        {"role": "assistant", "content": "Walk it with three pointers."},
    ]


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def test_export_json_round_trip():
    """JSON export re-imports to an equal conversation."""
    conv = _sample_conversation()
    exported = export_conversation(conv, "json")
    assert json.loads(exported)["title"] == "Linked lists"

    restored = import_conversation(exported)
    assert restored.to_dict() == conv.to_dict()


def test_export_json_tags_sorted():
    exported = json.loads(export_conversation(_sample_conversation(), "json"))
    assert exported["metadata"]["tags"] == ["algorithms", "cs"]


def test_export_markdown_layout():
    """Markdown has a title heading and one section per message."""
    md = export_conversation(_sample_conversation(), "markdown")
    assert md.startswith("# Linked lists\n")
    assert "*Created: 2024-03-01 12:00:00*" in md
    assert "## User (2024-03-01 12:00:05)" in md
    assert "## Assistant (2024-03-01 12:00:09)" in md
    assert "## Error (2024-03-01 12:01:00)" in md
    assert md.index("How do I reverse one?") < md.index("Walk it with three pointers.")


def test_export_text_layout():
    txt = export_conversation(_sample_conversation(), "text")
    assert txt.startswith("Linked lists\nCreated: 2024-03-01 12:00:00")
    assert "User (2024-03-01 12:00:05):\nHow do I reverse one?" in txt
    assert "#" not in txt


def test_export_format_aliases():
    """'md' and 'txt' are accepted, case-insensitively."""
    conv = _sample_conversation()
    assert export_conversation(conv, "MD") == export_conversation(conv, "markdown")
    assert export_conversation(conv, "txt") == export_conversation(conv, "text")


def test_export_unknown_format():
    with pytest.raises(ValueError, match="Unknown export format"):
        export_conversation(_sample_conversation(), "pdf")


def test_export_tolerates_bad_timestamp():
    conv = Conversation(title="t", created_at="not a date")
    assert "*Created: not a date*" in export_conversation(conv, "markdown")

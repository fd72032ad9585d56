"""
Conversation export.

Formats:
    json     : direct structural dump (import_conversation() reverses it)
    markdown : "# <title>", then "## <Sender> (<timestamp>)" per message
    text     : same layout without markup ("txt" is accepted too)
"""

from __future__ import annotations

import json
from datetime import datetime

from switchboard.storage.models import Conversation

SENDERS = {
    "user": "User",
    "assistant": "Assistant",
    "system": "System",
    "error": "Error",
}

FORMATS = ("json", "markdown", "text")
_ALIASES = {"md": "markdown", "txt": "text"}


def _display_time(ts: str) -> str:
    try:
        return datetime.fromisoformat(ts).strftime("%Y-%m-%d %H:%M:%S")
    except (TypeError, ValueError):
        return ts or "unknown time"


def to_json(conversation: Conversation) -> str:
    return json.dumps(conversation.to_dict(), indent=2, ensure_ascii=False)


def to_markdown(conversation: Conversation) -> str:
    parts = [f"# {conversation.title}\n", f"*Created: {_display_time(conversation.created_at)}*\n"]
    for message in conversation.messages:
        sender = SENDERS.get(message.type, message.type.title())
        parts.append(f"## {sender} ({_display_time(message.timestamp)})\n")
        parts.append(f"{message.content}\n")
    return "\n".join(parts)


def to_text(conversation: Conversation) -> str:
    parts = [f"{conversation.title}\nCreated: {_display_time(conversation.created_at)}\n"]
    for message in conversation.messages:
        sender = SENDERS.get(message.type, message.type.title())
        parts.append(f"{sender} ({_display_time(message.timestamp)}):\n{message.content}\n")
    return "\n".join(parts)


_RENDERERS = {
    "json": to_json,
    "markdown": to_markdown,
    "text": to_text,
}


def export_conversation(conversation: Conversation, fmt: str = "json") -> str:
    """
    Render a conversation.

    Raises:
        ValueError: for a format other than json, markdown or text.
    """
    key = (fmt or "").lower().strip()
    key = _ALIASES.get(key, key)
    renderer = _RENDERERS.get(key)
    if renderer is None:
        raise ValueError(f"Unknown export format '{fmt}'. Use: {', '.join(FORMATS)}")
    return renderer(conversation)


def import_conversation(data: str | dict) -> Conversation:
    """Rebuild a Conversation from its JSON export."""
    if isinstance(data, str):
        data = json.loads(data)
    return Conversation.from_dict(data)

"""
Data models for conversation storage.
These define the shape of data flowing through the store and pipeline.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from uuid import uuid4

MESSAGE_TYPES = ("user", "assistant", "system", "error")


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_conversation_id() -> str:
    return f"conv_{uuid4().hex}"


def new_message_id() -> str:
    return f"msg_{uuid4().hex}"


@dataclass
class Message:
    """A single message in a conversation."""
    content: str = ""
    type: str = "user"       # "user", "assistant", "system", "error"
    id: str = field(default_factory=new_message_id)
    timestamp: str = field(default_factory=utcnow)
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.type not in MESSAGE_TYPES:
            raise ValueError(f"Unknown message type '{self.type}'")
        base = {"tokens": 0, "model": "", "processing_time_ms": 0, "retries": 0}
        base.update(self.metadata or {})
        self.metadata = base

    @property
    def role(self) -> str | None:
        """Chat role for provider context, or None if the message isn't part of the dialogue."""
        if self.type in ("user", "assistant"):
            return self.type
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "type": self.type,
            "timestamp": self.timestamp,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Message:
        return cls(
            id=data.get("id") or new_message_id(),
            content=data.get("content", ""),
            type=data.get("type", "user"),
            timestamp=data.get("timestamp") or utcnow(),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class ConversationSettings:
    """Generation settings shared by every message in a conversation."""
    model: str = "gpt-4"
    temperature: float = 0.7
    max_tokens: int = 2000
    system_prompt: str = ""

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    def merged(self, overrides: dict) -> ConversationSettings:
        """Return a copy with the known keys in overrides applied."""
        data = asdict(self)
        data.update({k: v for k, v in overrides.items() if k in data and v is not None})
        return ConversationSettings(**data)


@dataclass
class ConversationMetadata:
    message_count: int = 0
    tokens_used: int = 0
    tags: set[str] = field(default_factory=set)
    archived: bool = False
    starred: bool = False

    def to_dict(self) -> dict:
        return {
            "message_count": self.message_count,
            "tokens_used": self.tokens_used,
            "tags": sorted(self.tags),
            "archived": self.archived,
            "starred": self.starred,
        }


@dataclass
class Conversation:
    """An ordered thread of messages sharing generation settings."""
    id: str = field(default_factory=new_conversation_id)
    title: str = ""
    messages: list[Message] = field(default_factory=list)
    created_at: str = field(default_factory=utcnow)
    updated_at: str = field(default_factory=utcnow)
    settings: ConversationSettings = field(default_factory=ConversationSettings)
    metadata: ConversationMetadata = field(default_factory=ConversationMetadata)
    title_locked: bool = False  # set once the user renames explicitly

    def touch(self):
        self.updated_at = utcnow()

    def to_dict(self) -> dict:
        """Structural dump; JSON-safe."""
        return {
            "id": self.id,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "settings": asdict(self.settings),
            "metadata": self.metadata.to_dict(),
            "title_locked": self.title_locked,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Conversation:
        # Entries that are not objects are dropped; the rest of the record survives
        messages = [Message.from_dict(m) for m in data.get("messages") or [] if isinstance(m, dict)]
        settings_data = data.get("settings") or {}
        meta = data.get("metadata") or {}
        known = ConversationSettings.field_names()
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            messages=messages,
            created_at=data.get("created_at") or utcnow(),
            updated_at=data.get("updated_at") or utcnow(),
            settings=ConversationSettings(**{k: v for k, v in settings_data.items() if k in known}),
            metadata=ConversationMetadata(
                # Count is derived from the messages, never trusted from disk
                message_count=len(messages),
                tokens_used=int(meta.get("tokens_used", 0)),
                tags=set(meta.get("tags") or []),
                archived=bool(meta.get("archived", False)),
                starred=bool(meta.get("starred", False)),
            ),
            title_locked=bool(data.get("title_locked", False)),
        )

    def to_openai_format(self) -> list[dict]:
        """Dialogue messages in OpenAI messages array format."""
        return [{"role": m.role, "content": m.content} for m in self.messages if m.role]

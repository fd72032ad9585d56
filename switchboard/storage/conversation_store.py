"""
Conversation store: owns every conversation record and the active pointer.

Persistence is write-through: each mutating call serializes the whole
collection and hands it to the key-value backend. At startup, load() merges
persisted records into memory and guarantees an active conversation exists.

The store is confined to a single event loop. Anything that wants to call it
from other threads must put a lock or an actor in front of it first.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from switchboard import events
from switchboard.events import EventBus
from switchboard.export import export_conversation, import_conversation
from switchboard.storage.backends.base import KeyValueBackend
from switchboard.storage.models import Conversation, ConversationSettings

logger = logging.getLogger(__name__)

CONVERSATIONS_KEY = "conversations"
ACTIVE_KEY = "active_conversation_id"


class ConversationStore:

    def __init__(
        self,
        backend: KeyValueBackend,
        bus: EventBus | None = None,
        default_settings: dict | None = None,
    ):
        self.backend = backend
        self.bus = bus or EventBus()
        self.default_settings = ConversationSettings().merged(default_settings or {})
        self._conversations: dict[str, Conversation] = {}
        self._active_id: str | None = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> int:
        """
        Merge persisted conversations into memory.
        Creates a fresh conversation if nothing usable was stored.
        Returns the number of records loaded.
        """
        try:
            stored = await self.backend.get([CONVERSATIONS_KEY, ACTIVE_KEY])
        except Exception as e:
            logger.warning("Failed to load conversations: %s", e)
            stored = {}

        loaded = 0
        for raw in stored.get(CONVERSATIONS_KEY) or []:
            if not isinstance(raw, dict):
                logger.warning("Skipping malformed conversation record: %r", raw)
                continue
            try:
                conversation = Conversation.from_dict(raw)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed conversation record: %s", e)
                continue
            self._conversations[conversation.id] = conversation
            loaded += 1

        active = stored.get(ACTIVE_KEY)
        if active in self._conversations:
            self._active_id = active
        elif self._conversations:
            self._active_id = list(self._conversations)[-1]

        logger.info("Loaded %d conversation(s) from storage", loaded)
        await self.ensure_active()
        return loaded

    async def save(self) -> None:
        """Serialize the full collection and write it through to the backend."""
        payload = {
            CONVERSATIONS_KEY: [c.to_dict() for c in self._conversations.values()],
            ACTIVE_KEY: self._active_id,
        }
        try:
            await self.backend.set(payload)
        except Exception as e:
            # In-memory state stays authoritative; next mutation retries the write
            logger.error("Failed to save conversations: %s", e)

    # ------------------------------------------------------------------
    # Conversation lifecycle
    # ------------------------------------------------------------------

    async def create_conversation(self, title: str | None = None) -> Conversation:
        conversation = Conversation(
            title=title or f"Conversation {len(self._conversations) + 1}",
            settings=replace(self.default_settings),
        )
        self._conversations[conversation.id] = conversation
        self._active_id = conversation.id
        await self.save()
        logger.debug("Created conversation %s", conversation.id)
        self.bus.emit(events.CONVERSATION_CREATED, conversation=conversation)
        return conversation

    async def ensure_active(self) -> Conversation:
        """Return the active conversation, creating one if the store is empty."""
        conversation = self.get_conversation()
        if conversation is None:
            conversation = await self.create_conversation()
        return conversation

    def get_conversation(self, conversation_id: str | None = None) -> Conversation | None:
        """Active conversation when id is omitted; None for an unknown id."""
        return self._conversations.get(conversation_id or self._active_id or "")

    async def switch_conversation(self, conversation_id: str) -> bool:
        if conversation_id not in self._conversations:
            return False
        self._active_id = conversation_id
        await self.save()
        self.bus.emit(
            events.CONVERSATION_SWITCHED,
            conversation_id=conversation_id,
            conversation=self._conversations[conversation_id],
        )
        return True

    async def delete_conversation(self, conversation_id: str) -> bool:
        conversation = self._conversations.pop(conversation_id, None)
        if conversation is None:
            return False

        if self._active_id == conversation_id:
            if self._conversations:
                self._active_id = next(iter(self._conversations))
            else:
                self._active_id = None
                # create_conversation saves and becomes active
                await self.create_conversation()

        await self.save()
        self.bus.emit(
            events.CONVERSATION_DELETED,
            conversation_id=conversation_id,
            conversation=conversation,
        )
        return True

    async def update_settings(self, conversation_id: str, **partial) -> bool:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return False
        unknown = set(partial) - ConversationSettings.field_names()
        if unknown:
            raise ValueError(f"Unknown conversation setting(s): {', '.join(sorted(unknown))}")

        for key, value in partial.items():
            setattr(conversation.settings, key, value)
        conversation.touch()
        await self.save()
        self.bus.emit(events.CONVERSATION_UPDATED, conversation_id=conversation_id, conversation=conversation)
        return True

    async def update_metadata(
        self,
        conversation_id: str,
        starred: bool | None = None,
        archived: bool | None = None,
        add_tags: list[str] | None = None,
        remove_tags: list[str] | None = None,
    ) -> bool:
        """Star/archive/tag a conversation."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return False
        meta = conversation.metadata
        if starred is not None:
            meta.starred = bool(starred)
        if archived is not None:
            meta.archived = bool(archived)
        meta.tags.update(t.strip() for t in add_tags or [] if t.strip())
        meta.tags.difference_update(remove_tags or [])
        conversation.touch()
        await self.save()
        self.bus.emit(events.CONVERSATION_UPDATED, conversation_id=conversation_id, conversation=conversation)
        return True

    async def rename_conversation(self, conversation_id: str, title: str) -> bool:
        """Set a title explicitly. Auto-titling never overrides it afterwards."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None or not title.strip():
            return False
        conversation.title = title.strip()
        conversation.title_locked = True
        conversation.touch()
        await self.save()
        self.bus.emit(events.CONVERSATION_UPDATED, conversation_id=conversation_id, conversation=conversation)
        return True

    async def import_conversation(self, data: str) -> Conversation:
        """Insert a conversation from its JSON export. Replaces one with the same id."""
        conversation = import_conversation(data)
        self._conversations[conversation.id] = conversation
        if self._active_id is None:
            self._active_id = conversation.id
        await self.save()
        self.bus.emit(events.CONVERSATION_CREATED, conversation=conversation)
        return conversation

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def active_conversation_id(self) -> str | None:
        return self._active_id

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    def list_conversations(self, include_archived: bool = True) -> list[Conversation]:
        return [
            c for c in self._conversations.values()
            if include_archived or not c.metadata.archived
        ]

    def get_history(self, conversation_id: str | None = None) -> list:
        conversation = self.get_conversation(conversation_id)
        return list(conversation.messages) if conversation else []

    def search_conversations(self, query: str) -> list[dict]:
        """
        Rank conversations by the fraction of query terms found in their
        title, message contents and tags.
        Returns [{"conversation": Conversation, "relevance": float}, ...].
        """
        terms = [t for t in query.lower().split() if t]
        if not terms:
            return []

        results = []
        for conversation in self._conversations.values():
            haystack = " ".join([
                conversation.title,
                *(m.content for m in conversation.messages),
                *conversation.metadata.tags,
            ]).lower()
            matches = sum(1 for t in terms if t in haystack)
            if matches:
                results.append({"conversation": conversation, "relevance": matches / len(terms)})

        results.sort(key=lambda r: r["relevance"], reverse=True)
        return results

    def get_stats(self) -> dict:
        conversations = list(self._conversations.values())
        return {
            "total_conversations": len(conversations),
            "total_messages": sum(len(c.messages) for c in conversations),
            "total_tokens": sum(c.metadata.tokens_used for c in conversations),
            "archived_conversations": sum(1 for c in conversations if c.metadata.archived),
            "starred_conversations": sum(1 for c in conversations if c.metadata.starred),
        }

    def export_conversation(self, conversation_id: str, fmt: str = "json") -> str | None:
        """Render a conversation as json, markdown or text. None for an unknown id."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return None
        return export_conversation(conversation, fmt)

"""
Conversation storage: data models, the conversation store, and the key-value
backends it persists through.
"""
from switchboard.storage.conversation_store import ConversationStore
from switchboard.storage.models import (
    Conversation,
    ConversationMetadata,
    ConversationSettings,
    Message,
)

__all__ = [
    "ConversationStore",
    "Conversation",
    "ConversationMetadata",
    "ConversationSettings",
    "Message",
]

"""
Event bus: synchronous publish/subscribe for conversation lifecycle events.

Subscribers register for a named event or the wildcard "*". Delivery order is
subscription order. A subscriber that raises is logged and skipped; it never
blocks delivery to the rest, and never aborts the operation that emitted.

Callbacks receive (payload: dict, event: str).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

WILDCARD = "*"

CONVERSATION_CREATED = "conversationCreated"
CONVERSATION_SWITCHED = "conversationSwitched"
CONVERSATION_DELETED = "conversationDeleted"
CONVERSATION_UPDATED = "conversationUpdated"
MESSAGE_ADDED = "messageAdded"
MESSAGE_PROCESSED = "messageProcessed"
MESSAGE_ERROR = "messageError"

EVENTS = (
    CONVERSATION_CREATED,
    CONVERSATION_SWITCHED,
    CONVERSATION_DELETED,
    CONVERSATION_UPDATED,
    MESSAGE_ADDED,
    MESSAGE_PROCESSED,
    MESSAGE_ERROR,
)

Callback = Callable[[dict, str], Any]


@dataclass(eq=False)
class Subscription:
    event: str
    callback: Callback


class EventBus:
    """In-process event dispatcher."""

    def __init__(self):
        self._subscriptions: list[Subscription] = []

    def subscribe(self, event: str, callback: Callback) -> Callable[[], None]:
        """Register a callback. Returns a function that removes it again."""
        sub = Subscription(event=event, callback=callback)
        self._subscriptions.append(sub)

        def _unsubscribe():
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

        return _unsubscribe

    def unsubscribe(self, callback: Callback) -> int:
        """Remove every subscription using this callback. Returns how many."""
        before = len(self._subscriptions)
        self._subscriptions = [s for s in self._subscriptions if s.callback is not callback]
        return before - len(self._subscriptions)

    def emit(self, event: str, **payload) -> None:
        # Snapshot so a callback that (un)subscribes doesn't disturb this delivery
        for sub in list(self._subscriptions):
            if sub.event != event and sub.event != WILDCARD:
                continue
            try:
                sub.callback(payload, event)
            except Exception as e:
                logger.warning("Event subscriber for '%s' failed: %s", event, e, exc_info=True)

    def clear(self) -> None:
        self._subscriptions.clear()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

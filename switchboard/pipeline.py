"""
Message pipeline: appends messages and serializes sends.

At most one send is in flight for the whole pipeline. send_message() puts a
request on a bounded FIFO queue; a single worker task takes requests off one
at a time and only starts the next once the current one has fully finished
(reply stored, or error stored and raised). A second send issued while one is
outstanding therefore never reads the message list while the first is still
appending to it.

queue_depth shows how many sends are waiting. When the queue is full,
send_message() waits for a free slot instead of dropping the request.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field

from switchboard import events
from switchboard.context import ContextMiddleware
from switchboard.errors import ConversationNotFoundError
from switchboard.events import EventBus
from switchboard.providers.router import ProviderRouter
from switchboard.storage.conversation_store import ConversationStore
from switchboard.storage.models import Conversation, ConversationSettings, Message

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES = 1000
DEFAULT_CONTEXT_WINDOW = 20
DEFAULT_QUEUE_SIZE = 100
TITLE_WORDS = 8
TITLE_MAX_CHARS = 50


def derive_title(content: str) -> str:
    """First 8 words; cut to 47 chars + "..." if that's still over 50."""
    title = " ".join(content.strip().split(" ")[:TITLE_WORDS])
    if len(title) > TITLE_MAX_CHARS:
        title = title[:TITLE_MAX_CHARS - 3] + "..."
    return title


@dataclass
class SendRequest:
    content: str
    conversation_id: str | None
    options: dict
    future: asyncio.Future = field(repr=False)


@dataclass
class SendResult:
    user_message: Message
    assistant_message: Message
    conversation_id: str

    def to_dict(self) -> dict:
        return {
            "conversation_id": self.conversation_id,
            "user_message": self.user_message.to_dict(),
            "assistant_message": self.assistant_message.to_dict(),
        }


class MessagePipeline:

    def __init__(
        self,
        store: ConversationStore,
        router: ProviderRouter,
        bus: EventBus | None = None,
        context_middleware: ContextMiddleware | None = None,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self.store = store
        self.router = router
        self.bus = bus or store.bus
        self.context_middleware = context_middleware
        self.max_messages = max_messages
        self.context_window = context_window
        self._queue: asyncio.Queue[SendRequest] = asyncio.Queue(maxsize=queue_size)
        self._worker: asyncio.Task | None = None
        self._in_flight: SendRequest | None = None

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def add_message(
        self,
        conversation: Conversation,
        content: str,
        type: str = "user",
        metadata: dict | None = None,
    ) -> Message:
        """Append a message, keep the count/title/size invariants, persist, notify."""
        message = Message(content=content, type=type, metadata=metadata or {})
        conversation.messages.append(message)
        conversation.metadata.message_count += 1
        conversation.touch()

        if len(conversation.messages) == 1 and type == "user" and not conversation.title_locked:
            conversation.title = derive_title(content)

        if len(conversation.messages) > self.max_messages:
            conversation.messages = conversation.messages[-self.max_messages:]
            conversation.metadata.message_count = len(conversation.messages)

        await self.store.save()
        self.bus.emit(events.MESSAGE_ADDED, message=message, conversation_id=conversation.id)
        return message

    def build_conversation_context(
        self,
        conversation: Conversation,
        settings: ConversationSettings | None = None,
        exclude_message_id: str | None = None,
    ) -> list[dict]:
        """
        System prompt (if set) followed by the last `context_window`
        user/assistant messages, oldest first.
        """
        settings = settings or conversation.settings
        context = []
        if settings.system_prompt:
            context.append({"role": "system", "content": settings.system_prompt})

        dialogue = [
            m for m in conversation.messages
            if m.role and m.id != exclude_message_id
        ]
        if self.context_window > 0:
            dialogue = dialogue[-self.context_window:]
        else:
            dialogue = []
        context.extend({"role": m.role, "content": m.content} for m in dialogue)
        return context

    # ------------------------------------------------------------------
    # Sends
    # ------------------------------------------------------------------

    @property
    def queue_depth(self) -> int:
        """Sends waiting behind the one in flight."""
        return self._queue.qsize()

    @property
    def is_processing(self) -> bool:
        return self._in_flight is not None

    def _ensure_worker(self):
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="switchboard-send-worker")

    async def send_message(self, content: str, conversation_id: str | None = None, **options) -> SendResult:
        """
        Queue a send and wait for it to finish.

        Options (model, temperature, max_tokens, system_prompt) override the
        conversation's settings for this send only.

        Raises:
            NoProviderConfiguredError / AllProvidersExhaustedError on terminal
            failure (an error message is appended first).
            ConversationNotFoundError for an unknown conversation_id.
        """
        if not content or not content.strip():
            raise ValueError("Message content is empty")

        request = SendRequest(
            content=content,
            conversation_id=conversation_id,
            options=options,
            future=asyncio.get_running_loop().create_future(),
        )
        self._ensure_worker()
        if self._queue.full():
            logger.warning("Send queue full (%d waiting), waiting for a slot", self._queue.qsize())
        await self._queue.put(request)
        return await request.future

    async def _run(self):
        """Single consumer: one send at a time, strictly FIFO."""
        while True:
            request = await self._queue.get()
            try:
                if request.future.cancelled():
                    continue
                self._in_flight = request
                try:
                    result = await self._process(request)
                except Exception as e:
                    if not request.future.done():
                        request.future.set_exception(e)
                else:
                    if not request.future.done():
                        request.future.set_result(result)
            finally:
                self._in_flight = None
                self._queue.task_done()

    async def _resolve_conversation(self, conversation_id: str | None) -> Conversation:
        if conversation_id:
            conversation = self.store.get_conversation(conversation_id)
            if conversation is None:
                raise ConversationNotFoundError(conversation_id)
            return conversation
        return await self.store.ensure_active()

    async def _process(self, request: SendRequest) -> SendResult:
        # Pinned for the whole send, even if the active conversation changes meanwhile
        conversation = await self._resolve_conversation(request.conversation_id)
        user_message = await self.add_message(conversation, request.content, "user")
        settings = conversation.settings.merged(request.options)

        try:
            outgoing = request.content
            if self.context_middleware is not None:
                outgoing = await self.context_middleware.apply(request.content)
            context = self.build_conversation_context(
                conversation, settings, exclude_message_id=user_message.id,
            )
            route = await self.router.route(outgoing, context, settings)
        except Exception as e:
            logger.error("Send failed for conversation %s: %s", conversation.id, e)
            error_message = await self.add_message(
                conversation,
                f"Error: {e}",
                "error",
                {"error": e.__class__.__name__},
            )
            self.bus.emit(
                events.MESSAGE_ERROR,
                error=e,
                error_message=error_message,
                conversation_id=conversation.id,
            )
            raise

        conversation.metadata.tokens_used += route.tokens
        assistant_message = await self.add_message(
            conversation,
            route.content,
            "assistant",
            {
                "model": route.model,
                "tokens": route.tokens,
                "processing_time_ms": round(route.processing_time_ms, 1),
                "retries": route.retries,
                "provider": route.provider,
            },
        )
        self.bus.emit(
            events.MESSAGE_PROCESSED,
            user_message=user_message,
            assistant_message=assistant_message,
            conversation_id=conversation.id,
        )
        return SendResult(
            user_message=user_message,
            assistant_message=assistant_message,
            conversation_id=conversation.id,
        )

    async def join(self) -> None:
        """Wait until every queued send has finished."""
        await self._queue.join()

    async def close(self) -> None:
        """
        Stop the worker once the send in flight has finished.
        Sends still waiting in the queue are cancelled.
        """
        while not self._queue.empty():
            request = self._queue.get_nowait()
            request.future.cancel()
            self._queue.task_done()
        if self._worker is not None:
            if not self._worker.done():
                await self._queue.join()

            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

"""
Shared fixtures: scripted providers and an in-memory store/pipeline.
"""

import asyncio

import pytest
import pytest_asyncio

from switchboard.errors import ConfigurationError, TransientProviderError
from switchboard.events import EventBus
from switchboard.pipeline import MessagePipeline
from switchboard.providers.base import BaseProvider, ProviderConfig, Success
from switchboard.providers.router import ProviderRouter
from switchboard.storage.backends.memory import MemoryBackend
from switchboard.storage.conversation_store import ConversationStore


class ScriptedProvider(BaseProvider):
    """
    Provider that plays back a script instead of calling the network.

    Each step is a Success (returned), an exception (raised), or an async
    callable taking the content (awaited, its result returned).
    """

    def __init__(self, name, script=(), configured=True, priority=1, max_attempts=3, timeout=5.0):
        super().__init__(ProviderConfig(
            name=name,
            priority=priority,
            url="http://fake",
            api_key="key" if configured else "",
            timeout=timeout,
            max_attempts=max_attempts,
        ))
        self.script = list(script)
        self.calls = []

    def endpoint(self, settings):
        return self.url

    def build_payload(self, content, context, settings):
        return {}

    def parse_response(self, data, settings):
        raise NotImplementedError

    async def complete(self, content, context, settings):
        self.calls.append({"content": content, "context": context, "settings": settings})
        if not self.is_configured():
            raise ConfigurationError(f"{self.name} is not configured", provider=self.name)
        if not self.script:
            raise TransientProviderError("script exhausted", provider=self.name)

        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            step = await step(content)
        step.provider = self.name
        return step


def ok(content="reply", model="test-model", tokens=5):
    return Success(content=content, model=model, tokens=tokens)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest_asyncio.fixture
async def store(backend, bus):
    s = ConversationStore(backend, bus=bus)
    await s.load()
    return s


@pytest.fixture
def provider():
    return ScriptedProvider("primary")


@pytest_asyncio.fixture
async def pipeline(store, bus, provider):
    p = MessagePipeline(store, ProviderRouter([provider], retry_attempts=1), bus=bus)
    yield p
    await p.close()


async def wait_until(predicate, timeout=1.0):
    """Spin the loop until predicate() is true."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0)

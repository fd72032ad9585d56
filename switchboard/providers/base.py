"""
Base provider abstraction.
All providers implement this interface so the router can treat them uniformly.

A provider call either returns a Success it built explicitly from its own
response format, or raises a ProviderError. The router turns raised errors
into Failure values via the classifier, so the router only ever sees the
tagged ProviderResult union.
"""

from __future__ import annotations

import abc
import enum
import json
import logging
import time
from dataclasses import dataclass, field

import httpx

from switchboard.errors import ConfigurationError, PermanentProviderError
from switchboard.storage.models import ConversationSettings

logger = logging.getLogger(__name__)


class FailureKind(str, enum.Enum):
    CONFIGURATION = "configuration"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass
class Success:
    """Normalized provider reply."""
    content: str
    model: str
    tokens: int = 0
    provider: str = ""
    latency_ms: float = 0.0


@dataclass
class Failure:
    """One failed provider attempt, already classified."""
    kind: FailureKind
    provider: str
    error: str
    status_code: int | None = None
    attempt: int = 0
    latency_ms: float = 0.0


ProviderResult = Success | Failure


@dataclass
class ProviderConfig:
    """Static configuration for one provider in the chain."""
    name: str
    priority: int = 99
    url: str = ""
    api_key: str = ""
    timeout: float = 30.0
    max_attempts: int = 3
    options: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, cfg: dict, priority: int = 99) -> ProviderConfig:
        known = {"url", "api_key", "timeout", "max_attempts"}
        return cls(
            name=cfg.get("name", name),
            priority=priority,
            url=cfg.get("url", "") or "",
            api_key=cfg.get("api_key", "") or "",
            timeout=float(cfg.get("timeout", 30)),
            max_attempts=int(cfg.get("max_attempts", 3)),
            options={k: v for k, v in cfg.items() if k not in known and k != "name"},
        )


class BaseProvider(abc.ABC):
    """
    Abstract base for chat providers.
    Each provider knows how to shape its request and read its response.
    """

    default_url: str = ""

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.name = config.name
        self.priority = config.priority
        self.url = (config.url or self.default_url).rstrip("/")
        self.api_key = config.api_key
        self.timeout = config.timeout
        self.max_attempts = max(1, config.max_attempts)

    def is_configured(self) -> bool:
        """True if credentials / endpoint are present. Never touches the network."""
        return bool(self.url and self.api_key)

    @abc.abstractmethod
    def endpoint(self, settings: ConversationSettings) -> str:
        ...

    @abc.abstractmethod
    def build_payload(self, content: str, context: list[dict], settings: ConversationSettings) -> dict:
        """Request body for this provider from the new content plus history."""
        ...

    @abc.abstractmethod
    def parse_response(self, data, settings: ConversationSettings) -> Success:
        """
        Build a Success from the provider's response body.
        Raises PermanentProviderError if no content can be found.
        """
        ...

    def headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def call(self, payload: dict, settings: ConversationSettings):
        """
        POST the payload and return the decoded JSON body.
        Raises a ProviderError subclass for HTTP errors and undecodable bodies;
        timeouts and network errors propagate as httpx exceptions.
        """
        # Imported here: classifier imports FailureKind from this module
        from switchboard.providers.classifier import error_for_status

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(
                self.endpoint(settings),
                headers=self.headers(),
                json=payload,
            )

        if resp.status_code >= 400:
            raise error_for_status(self.name, resp.status_code, resp.text[:200])

        try:
            return resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise PermanentProviderError(
                f"Response is not valid JSON: {e}", provider=self.name, status_code=resp.status_code,
            ) from e

    async def complete(self, content: str, context: list[dict], settings: ConversationSettings) -> Success:
        """Full provider round trip: validate config, call, normalize."""
        if not self.is_configured():
            raise ConfigurationError(f"{self.name} is not configured", provider=self.name)

        t0 = time.monotonic()
        payload = self.build_payload(content, context, settings)
        data = await self.call(payload, settings)
        try:
            result = self.parse_response(data, settings)
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            raise PermanentProviderError(
                f"Unexpected response shape: {e.__class__.__name__}: {e}", provider=self.name,
            ) from e
        result.provider = self.name
        result.latency_ms = (time.monotonic() - t0) * 1000
        return result

    def describe(self) -> dict:
        return {
            "name": self.name,
            "priority": self.priority,
            "configured": self.is_configured(),
            "timeout": self.timeout,
            "max_attempts": self.max_attempts,
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} url={self.url!r} priority={self.priority}>"

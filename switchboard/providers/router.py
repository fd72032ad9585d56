"""
Provider router: fixed-priority chain with whole-chain retry and fallback.

Per send:
    ATTEMPT(provider[i]) → SUCCESS  (return the normalized reply)
                         | ADVANCE  (try provider[i+1])
    end of chain         → RETRY    (back off, walk the chain again from the top)
                         | EXHAUSTED

The chain order is fixed: cloud AI (Vertex) → direct LLM (OpenAI) → workflow
webhook. Config supplies credentials, timeouts and budgets, never the order.

Each retry re-walks the whole chain from the top instead of retrying only the
provider that failed. Providers whose failure was configuration or permanent
are left out of later passes; transient ones come back until their own
attempt budget runs out.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from switchboard.errors import NoProviderConfiguredError
from switchboard.providers.base import (
    BaseProvider,
    Failure,
    FailureKind,
    ProviderConfig,
    ProviderResult,
    Success,
)
from switchboard.providers.classifier import Decision, FailureClassifier
from switchboard.providers.openai import OpenAIProvider
from switchboard.providers.vertex import VertexAIProvider
from switchboard.providers.webhook import WebhookProvider
from switchboard.storage.models import ConversationSettings

logger = logging.getLogger(__name__)

# Provider key → provider class, in chain order
PROVIDERS: dict[str, type[BaseProvider]] = {
    "vertex": VertexAIProvider,
    "openai": OpenAIProvider,
    "webhook": WebhookProvider,
}
PROVIDER_ORDER = tuple(PROVIDERS)


@dataclass
class RouteResult:
    """Outcome of a successful route: the reply plus how we got there."""
    success: Success
    attempts: int = 1
    processing_time_ms: float = 0.0
    failures: list[Failure] = field(default_factory=list)

    @property
    def content(self) -> str:
        return self.success.content

    @property
    def model(self) -> str:
        return self.success.model

    @property
    def tokens(self) -> int:
        return self.success.tokens

    @property
    def provider(self) -> str:
        return self.success.provider

    @property
    def retries(self) -> int:
        return self.attempts - 1


class ProviderRouter:
    """Routes a message across the provider chain."""

    def __init__(
        self,
        providers: list[BaseProvider],
        retry_attempts: int = 3,
        backoff_base: float = 2.0,
        backoff_max: float = 10.0,
        classifier: FailureClassifier | None = None,
    ):
        self.providers = list(providers)
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.classifier = classifier or FailureClassifier()

        names = [f"{p.name}(p{p.priority}{'' if p.is_configured() else ', unconfigured'})" for p in self.providers]
        logger.info("Provider router initialized: %s", " → ".join(names) or "no providers")

    @classmethod
    def from_config(cls, providers_cfg: dict, routing_cfg: dict | None = None) -> ProviderRouter:
        """Build the fixed chain from the `providers:` and `routing:` config blocks."""
        routing_cfg = routing_cfg or {}
        providers = []
        for rank, key in enumerate(PROVIDER_ORDER, start=1):
            cfg = (providers_cfg or {}).get(key)
            if cfg is None:
                continue
            if not cfg.get("enabled", True):
                logger.debug("Provider '%s' disabled in config", key)
                continue
            config = ProviderConfig.from_dict(key, cfg, priority=rank)
            providers.append(PROVIDERS[key](config))

        unknown = set(providers_cfg or {}) - set(PROVIDERS)
        for key in sorted(unknown):
            logger.warning("Unknown provider '%s' in config, skipping", key)

        return cls(
            providers,
            retry_attempts=int(routing_cfg.get("retry_attempts", 3)),
            backoff_base=float(routing_cfg.get("backoff_base", 2.0)),
            backoff_max=float(routing_cfg.get("backoff_max", 10.0)),
        )

    def get_provider(self, name: str) -> BaseProvider | None:
        for p in self.providers:
            if p.name == name:
                return p
        return None

    def configured_providers(self) -> list[BaseProvider]:
        return [p for p in self.providers if p.is_configured()]

    def _backoff_seconds(self, attempt: int) -> float:
        """Backoff before chain attempt N+1 (exponential, capped)."""
        return min(self.backoff_base ** attempt, self.backoff_max)

    async def _attempt(
        self,
        provider: BaseProvider,
        content: str,
        context: list[dict],
        settings: ConversationSettings,
        attempt: int,
    ) -> ProviderResult:
        t0 = time.monotonic()
        try:
            return await asyncio.wait_for(
                provider.complete(content, context, settings),
                timeout=provider.timeout,
            )
        except Exception as e:
            latency = (time.monotonic() - t0) * 1000
            return self.classifier.to_failure(provider.name, e, attempt=attempt, latency_ms=latency)

    async def route(
        self,
        content: str,
        context: list[dict],
        settings: ConversationSettings,
    ) -> RouteResult:
        """
        Walk the chain until a provider succeeds.

        Raises:
            NoProviderConfiguredError: no provider has credentials; nothing was sent.
            AllProvidersExhaustedError: every provider and attempt failed.
        """
        if not self.configured_providers():
            logger.error("No provider configured, refusing to route")
            raise NoProviderConfiguredError()

        t0 = time.monotonic()
        failures: list[Failure] = []
        used = {p.name: 0 for p in self.providers}
        retired: set[str] = set()
        attempt = 0

        while attempt < self.retry_attempts:
            chain = [
                p for p in self.providers
                if p.name not in retired and used[p.name] < p.max_attempts
            ]
            if not chain:
                break
            attempt += 1

            for provider in chain:
                used[provider.name] += 1
                logger.debug("Attempt %d: trying provider '%s'", attempt, provider.name)
                result = await self._attempt(provider, content, context, settings, attempt)

                if isinstance(result, Success):
                    elapsed = (time.monotonic() - t0) * 1000
                    logger.info(
                        "Provider '%s' answered with model '%s' in %.0fms (attempt %d)",
                        provider.name, result.model, result.latency_ms, attempt,
                    )
                    return RouteResult(
                        success=result,
                        attempts=attempt,
                        processing_time_ms=elapsed,
                        failures=failures,
                    )

                failures.append(result)
                decision = self.classifier.decide(result, used[provider.name], provider.max_attempts)
                if decision is Decision.ADVANCE:
                    retired.add(provider.name)
                log = logger.info if result.kind is FailureKind.CONFIGURATION else logger.warning
                log(
                    "Provider '%s' failed (%s, %s): %s",
                    provider.name, result.kind.value, decision.value, result.error,
                )

            remaining = [
                p for p in self.providers
                if p.name not in retired and used[p.name] < p.max_attempts
            ]
            if attempt < self.retry_attempts and remaining:
                backoff = self._backoff_seconds(attempt)
                logger.warning(
                    "Provider chain failed on attempt %d/%d, retrying in %.1fs",
                    attempt, self.retry_attempts, backoff,
                )
                await asyncio.sleep(backoff)

        raise self.classifier.exhausted(failures, attempt)

    async def health(self) -> dict:
        """Configuration state of every provider in chain order."""
        return {p.name: p.describe() for p in self.providers}

"""
Exception hierarchy for Switchboard.

Provider-level errors (configuration, transient, permanent) are raised by the
provider adapters and consumed by the router. Only the terminal errors
(AllProvidersExhaustedError, NoProviderConfiguredError) ever reach the
message pipeline and its callers.
"""

from __future__ import annotations

from typing import Any


class SwitchboardError(Exception):
    """Base exception for all Switchboard errors."""

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context or None
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConversationNotFoundError(SwitchboardError):
    """A send targeted a conversation id the store does not know."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}", conversation_id=conversation_id)
        self.conversation_id = conversation_id


# ---------------------------------------------------------------------------
# Provider errors: handled inside the router
# ---------------------------------------------------------------------------

class ProviderError(SwitchboardError):
    """A single provider call failed."""

    def __init__(self, message: str, provider: str = "", status_code: int | None = None, **context: Any):
        super().__init__(message, provider=provider, status_code=status_code, **context)
        self.provider = provider
        self.status_code = status_code


class ConfigurationError(ProviderError):
    """Missing or unusable credentials / endpoint for a provider."""


class TransientProviderError(ProviderError):
    """Timeout, 5xx, rate limit or network failure. Worth another try."""


class PermanentProviderError(ProviderError):
    """4xx other than auth, or a response with no recognizable content."""


# ---------------------------------------------------------------------------
# Terminal errors: surfaced to the pipeline
# ---------------------------------------------------------------------------

class NoProviderConfiguredError(SwitchboardError):
    """No provider in the chain has usable credentials. Nothing was sent."""

    def __init__(self, message: str = "No AI provider is configured. Add credentials for at least one provider."):
        super().__init__(message)


class AllProvidersExhaustedError(SwitchboardError):
    """Every provider failed on every attempt of the chain."""

    def __init__(self, failures: list | None = None, attempts: int = 0):
        self.failures = list(failures or [])
        self.attempts = attempts
        if self.failures:
            summary = "; ".join(f"{f.provider}: {f.error}" for f in self.failures[-3:])
        else:
            summary = "no providers available"
        super().__init__(
            f"All AI providers failed after {attempts} attempt(s): {summary}",
            attempts=attempts,
            failures=len(self.failures),
        )

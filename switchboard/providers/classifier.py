"""
Failure classifier for the provider chain.

Every provider failure lands in one of three buckets:

  configuration: missing/invalid credentials or endpoint, HTTP 401/403.
                  Advance immediately; this provider is not tried again.
  transient    : timeouts, network errors, HTTP 429 and 5xx.
                  Advance now; the provider is eligible again on the next
                  pass of the chain while its attempt budget lasts.
  permanent    : other 4xx, undecodable or unrecognized responses.
                  Advance; this provider is not tried again.

Once nothing is left to try, exhausted() builds the terminal error.
"""

from __future__ import annotations

import asyncio
import enum
import logging

import httpx

from switchboard.errors import (
    AllProvidersExhaustedError,
    ConfigurationError,
    PermanentProviderError,
    ProviderError,
    TransientProviderError,
)
from switchboard.providers.base import Failure, FailureKind

logger = logging.getLogger(__name__)

AUTH_STATUSES = (401, 403)
RETRYABLE_STATUSES = (429, 500, 501, 502, 503, 504)


class Decision(str, enum.Enum):
    RETRY = "retry"        # eligible again on the next chain attempt
    ADVANCE = "advance"    # drop this provider for the rest of the send


def error_for_status(provider: str, status_code: int, body: str = "") -> ProviderError:
    """Map an HTTP error status to the matching provider error."""
    message = f"HTTP {status_code}: {body}" if body else f"HTTP {status_code}"
    if status_code in AUTH_STATUSES:
        return ConfigurationError(message, provider=provider, status_code=status_code)
    if status_code in RETRYABLE_STATUSES or status_code >= 500:
        return TransientProviderError(message, provider=provider, status_code=status_code)
    return PermanentProviderError(message, provider=provider, status_code=status_code)


class FailureClassifier:

    def classify(self, exc: BaseException) -> FailureKind:
        if isinstance(exc, ConfigurationError):
            return FailureKind.CONFIGURATION
        if isinstance(exc, PermanentProviderError):
            return FailureKind.PERMANENT
        if isinstance(exc, TransientProviderError):
            return FailureKind.TRANSIENT
        if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException, httpx.TransportError)):
            return FailureKind.TRANSIENT
        if isinstance(exc, httpx.HTTPStatusError):
            return self.classify(error_for_status("", exc.response.status_code))
        if isinstance(exc, (AttributeError, KeyError, IndexError, TypeError, ValueError)):
            # Provider returned something we couldn't read
            return FailureKind.PERMANENT
        # Unknown failure: let the attempt budget bound it
        return FailureKind.TRANSIENT

    def to_failure(self, provider: str, exc: BaseException, attempt: int = 0, latency_ms: float = 0.0) -> Failure:
        if isinstance(exc, asyncio.TimeoutError):
            error = "Request timed out"
        else:
            error = str(exc) or exc.__class__.__name__
        return Failure(
            kind=self.classify(exc),
            provider=provider,
            error=error,
            status_code=getattr(exc, "status_code", None),
            attempt=attempt,
            latency_ms=latency_ms,
        )

    def decide(self, failure: Failure, attempts_used: int, max_attempts: int) -> Decision:
        if failure.kind is FailureKind.TRANSIENT and attempts_used < max_attempts:
            return Decision.RETRY
        return Decision.ADVANCE

    def exhausted(self, failures: list[Failure], attempts: int) -> AllProvidersExhaustedError:
        logger.error(
            "All providers exhausted after %d attempt(s): %s",
            attempts,
            "; ".join(f"{f.provider}[{f.kind.value}]: {f.error}" for f in failures) or "no failures recorded",
        )
        return AllProvidersExhaustedError(failures=failures, attempts=attempts)

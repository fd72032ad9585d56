"""
Provider chain for Switchboard.
Fixed-priority routing with fallback across Vertex AI, OpenAI and a workflow webhook.
"""
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
from switchboard.providers.router import ProviderRouter, RouteResult
from switchboard.providers.vertex import VertexAIProvider
from switchboard.providers.webhook import WebhookProvider

__all__ = [
    "BaseProvider",
    "Decision",
    "Failure",
    "FailureClassifier",
    "FailureKind",
    "OpenAIProvider",
    "ProviderConfig",
    "ProviderResult",
    "ProviderRouter",
    "RouteResult",
    "Success",
    "VertexAIProvider",
    "WebhookProvider",
]

"""
Direct LLM provider: OpenAI chat completions API.

Works with any endpoint that implements POST {url}/chat/completions in the
OpenAI format, so a self-hosted compatible server can stand in by URL.
"""

from __future__ import annotations

import logging

from switchboard.errors import PermanentProviderError
from switchboard.providers.base import BaseProvider, Success
from switchboard.storage.models import ConversationSettings

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseProvider):
    """Backend for the OpenAI chat completions API."""

    default_url = "https://api.openai.com/v1"

    def endpoint(self, settings: ConversationSettings) -> str:
        return f"{self.url}/chat/completions"

    def build_payload(self, content: str, context: list[dict], settings: ConversationSettings) -> dict:
        return {
            "model": settings.model or self.config.options.get("model", "gpt-4"),
            "messages": [*context, {"role": "user", "content": content}],
            "temperature": settings.temperature,
            "max_tokens": settings.max_tokens,
            "top_p": 0.9,
        }

    def parse_response(self, data, settings: ConversationSettings) -> Success:
        choices = data.get("choices") if isinstance(data, dict) else None
        content = ""
        if choices:
            content = (choices[0].get("message") or {}).get("content") or ""
        if not isinstance(content, str) or not content:
            raise PermanentProviderError("Response has no choices[0].message.content", provider=self.name)

        usage = data.get("usage") or {}
        return Success(
            content=content,
            model=data.get("model") or settings.model,
            tokens=int(usage.get("total_tokens") or 0),
        )

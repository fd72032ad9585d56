"""
Workflow provider: an automation webhook (e.g. an n8n workflow).

The workflow receives {message, context, settings} and may answer in any shape
its author chose. The reply text is taken from the first of the known fields
that carries a non-empty string. Workflows that respond with a list of items
are read from the first item.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from switchboard.errors import PermanentProviderError
from switchboard.providers.base import BaseProvider, Success
from switchboard.storage.models import ConversationSettings

logger = logging.getLogger(__name__)

CONTENT_FIELDS = ("content", "message", "response")


class WebhookProvider(BaseProvider):

    def is_configured(self) -> bool:
        # Webhooks authenticate by URL; a key is optional
        return bool(self.url)

    def headers(self) -> dict:
        headers = super().headers()
        secret = self.config.options.get("header_auth")
        if secret:
            headers["X-Webhook-Auth"] = secret
        return headers

    def endpoint(self, settings: ConversationSettings) -> str:
        return self.url

    def build_payload(self, content: str, context: list[dict], settings: ConversationSettings) -> dict:
        return {
            "message": content,
            "context": context,
            "settings": asdict(settings),
        }

    def parse_response(self, data, settings: ConversationSettings) -> Success:
        if isinstance(data, list) and data:
            data = data[0]
        if not isinstance(data, dict):
            raise PermanentProviderError("Webhook returned no JSON object", provider=self.name)

        for key in CONTENT_FIELDS:
            value = data.get(key)
            if isinstance(value, str) and value:
                usage = data.get("usage") or {}
                return Success(
                    content=value,
                    model=data.get("model") or settings.model or "unknown",
                    tokens=int(usage.get("total_tokens") or 0),
                )

        raise PermanentProviderError(
            f"Webhook response has none of: {', '.join(CONTENT_FIELDS)}", provider=self.name,
        )

"""
Cloud AI provider: Google Vertex AI text models (":predict" endpoint).

The text models take a single prompt, so the chat history is flattened into a
System:/User:/Assistant: transcript ending with an open "Assistant:" turn.
The credential is an OAuth access token; acquiring it is someone else's job.
"""

from __future__ import annotations

import logging

from switchboard.errors import PermanentProviderError
from switchboard.providers.base import BaseProvider, Success
from switchboard.storage.models import ConversationSettings

logger = logging.getLogger(__name__)

ROLE_LABELS = {
    "system": "System",
    "user": "User",
    "assistant": "Assistant",
}


def build_prompt(context: list[dict], content: str) -> str:
    """Flatten chat context plus the new message into one prompt string."""
    prompt = ""
    for entry in context:
        label = ROLE_LABELS.get(entry.get("role", ""))
        if label:
            prompt += f"{label}: {entry.get('content', '')}\n\n"
    prompt += f"User: {content}\n\nAssistant:"
    return prompt


class VertexAIProvider(BaseProvider):

    def __init__(self, config):
        super().__init__(config)
        opts = config.options
        self.location = opts.get("location", "us-central1")
        self.project_id = opts.get("project_id", "")
        self.model = opts.get("model", "text-bison@001")
        if not self.url:
            self.url = f"https://{self.location}-aiplatform.googleapis.com/v1"

    def is_configured(self) -> bool:
        return bool(self.api_key and self.project_id)

    def endpoint(self, settings: ConversationSettings) -> str:
        return (
            f"{self.url}/projects/{self.project_id}/locations/{self.location}"
            f"/publishers/google/models/{self.model}:predict"
        )

    def build_payload(self, content: str, context: list[dict], settings: ConversationSettings) -> dict:
        return {
            "instances": [{"prompt": build_prompt(context, content)}],
            "parameters": {
                "temperature": settings.temperature,
                "maxOutputTokens": settings.max_tokens,
                "topP": 0.9,
                "topK": 40,
            },
        }

    def parse_response(self, data, settings: ConversationSettings) -> Success:
        predictions = data.get("predictions") if isinstance(data, dict) else None
        content = predictions[0].get("content") if predictions else None
        if not isinstance(content, str) or not content:
            raise PermanentProviderError("Response has no predictions[0].content", provider=self.name)

        token_meta = (data.get("metadata") or {}).get("tokenMetadata") or {}
        tokens = sum(
            int((token_meta.get(k) or {}).get("totalTokens") or 0)
            for k in ("inputTokenCount", "outputTokenCount")
        )
        return Success(content=content, model=self.model, tokens=tokens)

"""LLM layer — Google Gemini adapter.

Gemini differs from the chat-completions family in three ways:
  - the API key travels in the query string (``?key=``), not a header
  - the system prompt is a top-level ``systemInstruction`` object
  - the assistant role is called ``model`` and text sits in ``parts[]``

The request URL therefore contains the key; log it through
``redact_url()`` only.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from agentmesh.config import ProviderConfig
from agentmesh.llm.models import ChatRequest, ChatRole, ProviderId
from agentmesh.llm.providers.base import ProviderAdapter


class GeminiAdapter(ProviderAdapter):
    provider_id = ProviderId.GEMINI
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def translate(
        self, req: ChatRequest, cfg: ProviderConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        key = quote(cfg.api_key.get_secret_value(), safe="")
        url = f"{self.base_url(cfg)}/models/{cfg.model}:generateContent?key={key}"

        contents = [
            {
                "role": "model" if role == ChatRole.ASSISTANT.value else "user",
                "parts": [{"text": content}],
            }
            for role, content in self._dialogue(req)
        ]
        body: dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": req.system_prompt}]},
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": cfg.max_tokens,
                "temperature": cfg.temperature,
            },
        }
        return url, {"Content-Type": "application/json"}, body

    def _reply_from(self, data: dict[str, Any]) -> str:
        field = "candidates[0].content.parts[].text"
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            raise self._missing(field) from None
        if not isinstance(parts, list):
            raise self._missing(field)
        texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
        if not texts:
            raise self._missing(field)
        return "".join(texts)

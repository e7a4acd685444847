"""LLM layer — Anthropic Messages API adapter.

Uses the ``/messages`` endpoint with raw JSON (no SDK):
  - ``system`` is a top-level field, not a message
  - each message carries typed content blocks (``[{"type": "text", ...}]``)
  - the reply is the concatenation of the ``text`` blocks in ``content[]``

Auth is ``x-api-key`` plus a pinned ``anthropic-version`` header.
"""

from __future__ import annotations

from typing import Any

from agentmesh.config import ProviderConfig
from agentmesh.llm.models import ChatRequest, ProviderId
from agentmesh.llm.providers.base import ProviderAdapter

_ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(ProviderAdapter):
    provider_id = ProviderId.ANTHROPIC
    default_base_url = "https://api.anthropic.com/v1"

    def translate(
        self, req: ChatRequest, cfg: ProviderConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        url = f"{self.base_url(cfg)}/messages"
        headers = {
            "Content-Type": "application/json",
            "x-api-key": cfg.api_key.get_secret_value(),
            "anthropic-version": _ANTHROPIC_VERSION,
        }
        body: dict[str, Any] = {
            "model": cfg.model,
            "max_tokens": cfg.max_tokens,
            "temperature": cfg.temperature,
            "system": req.system_prompt,
            "messages": [
                {"role": role, "content": [{"type": "text", "text": content}]}
                for role, content in self._dialogue(req)
            ],
        }
        return url, headers, body

    def _reply_from(self, data: dict[str, Any]) -> str:
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise self._missing("content")
        texts = [
            b["text"]
            for b in blocks
            if isinstance(b, dict) and b.get("type") == "text" and isinstance(b.get("text"), str)
        ]
        if not texts:
            raise self._missing("content[].text")
        return "".join(texts)

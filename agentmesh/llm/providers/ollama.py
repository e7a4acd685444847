"""LLM layer — Ollama local LLM adapter.

Targets Ollama's native ``/api/chat`` endpoint (not the OpenAI shim), with
streaming disabled so the whole reply arrives as one JSON object.  No
authentication; point ``base_url`` at the Ollama host on the LAN.

Reply text lives in ``message.content``.  Ollama reports failures as
``{"error": "<string>"}``, which the shared decoder already understands.
"""

from __future__ import annotations

from typing import Any

from agentmesh.config import ProviderConfig
from agentmesh.llm.models import ChatRequest, ProviderId
from agentmesh.llm.providers.base import ProviderAdapter


class OllamaAdapter(ProviderAdapter):
    provider_id = ProviderId.OLLAMA
    default_base_url = "http://localhost:11434"

    def translate(
        self, req: ChatRequest, cfg: ProviderConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        url = f"{self.base_url(cfg)}/api/chat"
        messages = [{"role": "system", "content": req.system_prompt}]
        messages.extend({"role": role, "content": content} for role, content in self._dialogue(req))
        body: dict[str, Any] = {
            "model": cfg.model,
            "stream": False,
            "messages": messages,
            "options": {
                "temperature": cfg.temperature,
                "num_predict": cfg.max_tokens,
            },
        }
        return url, {"Content-Type": "application/json"}, body

    def _reply_from(self, data: dict[str, Any]) -> str:
        message = data.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise self._missing("message.content")
        return content

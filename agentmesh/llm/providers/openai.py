"""LLM layer — OpenAI-compatible chat completion adapters.

Covers OpenAI itself and the two hosted services that speak the same
``/chat/completions`` dialect (Groq, OpenRouter).  Only the default base URL
differs between them.

Request::

    POST {base}/chat/completions
    Authorization: Bearer <api_key>
    {"model": ..., "max_tokens": ..., "temperature": ...,
     "messages": [{"role": "system", ...}, ...history, {"role": "user", ...}]}

Reply text lives in ``choices[0].message.content``.
"""

from __future__ import annotations

from typing import Any

from agentmesh.config import ProviderConfig
from agentmesh.llm.models import ChatRequest, ProviderId
from agentmesh.llm.providers.base import ProviderAdapter


class OpenAICompatibleAdapter(ProviderAdapter):
    provider_id = ProviderId.OPENAI
    default_base_url = "https://api.openai.com/v1"

    def translate(
        self, req: ChatRequest, cfg: ProviderConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        url = f"{self.base_url(cfg)}/chat/completions"

        headers = {"Content-Type": "application/json"}
        api_key = cfg.api_key.get_secret_value()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        messages = [{"role": "system", "content": req.system_prompt}]
        messages.extend({"role": role, "content": content} for role, content in self._dialogue(req))

        body: dict[str, Any] = {
            "model": cfg.model,
            "max_tokens": cfg.max_tokens,
            "temperature": cfg.temperature,
            "messages": messages,
        }
        return url, headers, body

    def _reply_from(self, data: dict[str, Any]) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise self._missing("choices[0].message.content") from None
        if not isinstance(content, str):
            raise self._missing("choices[0].message.content")
        return content


class GroqAdapter(OpenAICompatibleAdapter):
    provider_id = ProviderId.GROQ
    default_base_url = "https://api.groq.com/openai/v1"


class OpenRouterAdapter(OpenAICompatibleAdapter):
    provider_id = ProviderId.OPENROUTER
    default_base_url = "https://openrouter.ai/api/v1"

"""LLM layer — provider adapter registry.

Usage::

    from agentmesh.llm.providers import get_adapter

    adapter = get_adapter("Gemini")          # case-insensitive
    url, headers, body = adapter.translate(request, provider_config)
    reply = adapter.extract_reply(response.content, provider_config)

New providers plug in with ``register_adapter()``; nothing else branches on
the provider id.
"""

from __future__ import annotations

from agentmesh.llm.models import ProviderId
from agentmesh.llm.providers.anthropic import AnthropicAdapter
from agentmesh.llm.providers.base import ProviderAdapter, redact_url
from agentmesh.llm.providers.gemini import GeminiAdapter
from agentmesh.llm.providers.ollama import OllamaAdapter
from agentmesh.llm.providers.openai import (
    GroqAdapter,
    OpenAICompatibleAdapter,
    OpenRouterAdapter,
)

__all__ = [
    "ProviderAdapter",
    "available_providers",
    "get_adapter",
    "redact_url",
    "register_adapter",
]

_REGISTRY: dict[ProviderId, ProviderAdapter] = {
    ProviderId.OPENAI: OpenAICompatibleAdapter(),
    ProviderId.GROQ: GroqAdapter(),
    ProviderId.OPENROUTER: OpenRouterAdapter(),
    ProviderId.OLLAMA: OllamaAdapter(),
    ProviderId.GEMINI: GeminiAdapter(),
    ProviderId.ANTHROPIC: AnthropicAdapter(),
}


def get_adapter(provider_id: ProviderId | str) -> ProviderAdapter:
    """Return the adapter for *provider_id*; raises UnknownProviderError."""
    if not isinstance(provider_id, ProviderId):
        provider_id = ProviderId.parse(provider_id)
    return _REGISTRY[provider_id]


def register_adapter(provider_id: ProviderId, adapter: ProviderAdapter) -> None:
    _REGISTRY[provider_id] = adapter


def available_providers() -> dict[ProviderId, ProviderAdapter]:
    return dict(_REGISTRY)

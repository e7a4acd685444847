"""LLM layer — provider-agnostic chat data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from agentmesh.config import ProviderConfig
from agentmesh.exceptions import UnknownProviderError

__all__ = ["ChatRequest", "ChatRole", "ChatTurn", "ProviderConfig", "ProviderId"]


class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatTurn:
    """A single message in a chat-style conversation."""

    role: ChatRole
    content: str


@dataclass(frozen=True)
class ChatRequest:
    """What the conversation manager hands to a provider adapter.

    Generation knobs (model, max_tokens, temperature) come from the
    ``ProviderConfig`` passed alongside, not from the request.
    """

    system_prompt: str
    message: str
    history: list[ChatTurn] = field(default_factory=list)


class ProviderId(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    GROQ = "groq"
    OPENROUTER = "openrouter"
    OLLAMA = "ollama"

    @classmethod
    def parse(cls, raw: str) -> "ProviderId":
        """Case-insensitive lookup; raises UnknownProviderError."""
        try:
            return cls(raw.strip().lower())
        except ValueError:
            raise UnknownProviderError(raw) from None

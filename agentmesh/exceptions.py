"""agentmesh — Exception hierarchy.

All exceptions raised by the agent inherit from AgentMeshError so that callers
can catch the full family with a single except clause when needed.

Hierarchy:
    AgentMeshError
    ├── ConfigError
    ├── LLMError
    │   ├── UnknownProviderError
    │   ├── TransportError
    │   ├── ProviderRejectedError
    │   ├── MalformedResponseError
    │   └── ParseFailureError
    ├── ActuatorError
    │   └── UnknownActuatorError
    ├── IOBackendError
    └── MeshError
        └── MeshDisconnectedError

LLM errors are never fatal: the conversation manager turns them into reply
text via ``LLMError.reply_text``.
"""

from __future__ import annotations

from typing import Any


class AgentMeshError(Exception):
    """Base exception for all agentmesh errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


class ConfigError(AgentMeshError):
    """Settings or slot configuration is invalid or cannot be persisted."""


# ---------------------------------------------------------------------------
# LLM layer
# ---------------------------------------------------------------------------


class LLMError(AgentMeshError):
    """Base for all errors on the LLM request path."""

    @property
    def reply_text(self) -> str:
        """Human-readable text returned to the chat caller in place of a reply."""
        return f"Error: {self.message}"


class UnknownProviderError(LLMError):
    """The configured provider id does not map to a registered adapter."""

    def __init__(self, provider_id: str) -> None:
        super().__init__(
            f"Unknown LLM provider '{provider_id}'",
            context={"provider_id": provider_id},
        )
        self.provider_id = provider_id

    @property
    def reply_text(self) -> str:
        return self.message


class TransportError(LLMError):
    """The HTTP request failed (connection error, timeout, TLS)."""

    def __init__(self, reason: str, provider_id: str = "") -> None:
        super().__init__(
            f"LLM request failed: {reason}",
            context={"reason": reason, "provider_id": provider_id},
        )
        self.reason = reason


class ProviderRejectedError(LLMError):
    """The provider answered with a structured error envelope."""

    def __init__(self, provider_message: str, provider_id: str = "") -> None:
        super().__init__(
            provider_message,
            context={"provider_id": provider_id},
        )
        self.provider_message = provider_message

    @property
    def reply_text(self) -> str:
        return f"LLM Error: {self.provider_message}"


class MalformedResponseError(LLMError):
    """The success envelope was present but the reply field was missing."""

    def __init__(self, provider_id: str, field: str) -> None:
        super().__init__(
            "No content in response",
            context={"provider_id": provider_id, "field": field},
        )
        self.field = field


class ParseFailureError(LLMError):
    """The response body was not valid JSON."""

    def __init__(self, provider_id: str, raw_excerpt: str = "") -> None:
        super().__init__(
            "JSON parse failed",
            context={"provider_id": provider_id, "raw_excerpt": raw_excerpt},
        )
        self.raw_excerpt = raw_excerpt

    @property
    def reply_text(self) -> str:
        if self.raw_excerpt:
            return f"Error: {self.message}\n{self.raw_excerpt}"
        return f"Error: {self.message}"


# ---------------------------------------------------------------------------
# I/O layer
# ---------------------------------------------------------------------------


class ActuatorError(AgentMeshError):
    """Base for actuator control errors."""


class UnknownActuatorError(ActuatorError):
    """No actuator slot with this name exists."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Actuator '{name}' not found", context={"name": name})
        self.name = name


class IOBackendError(AgentMeshError):
    """The physical I/O backend is unavailable or a hardware call failed."""

    def __init__(self, backend: str, reason: str) -> None:
        super().__init__(
            f"I/O backend '{backend}' unavailable: {reason}",
            context={"backend": backend, "reason": reason},
        )
        self.backend = backend
        self.reason = reason


# ---------------------------------------------------------------------------
# Mesh layer
# ---------------------------------------------------------------------------


class MeshError(AgentMeshError):
    """Base for mesh transport errors."""


class MeshDisconnectedError(MeshError):
    """The mesh transport is not connected or the connection attempt failed."""

    def __init__(self, host: str, reason: str) -> None:
        super().__init__(
            f"Mesh broker '{host}' unreachable: {reason}",
            context={"host": host, "reason": reason},
        )
        self.host = host
        self.reason = reason

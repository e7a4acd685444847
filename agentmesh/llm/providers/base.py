"""LLM layer — Provider adapter base class.

An adapter is a pure translator between the provider-agnostic
``ChatRequest`` and one vendor's HTTP wire format:

  - ``translate()``      → (url, headers, json_body) for the POST
  - ``extract_reply()``  → reply text from the raw response body

Adapters never perform I/O; the conversation manager owns the
``httpx.AsyncClient``.  This keeps every adapter testable without a network.

Subclasses only need to implement ``translate()`` and ``_reply_from()``.
The shared ``extract_reply()`` handles the error checks every provider has
in common, in this order: body not JSON, ``error`` envelope, missing field.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, ClassVar
from urllib.parse import urlsplit, urlunsplit

from agentmesh.config import ProviderConfig
from agentmesh.exceptions import (
    MalformedResponseError,
    ParseFailureError,
    ProviderRejectedError,
)
from agentmesh.llm.models import ChatRequest, ChatRole, ProviderId

_EXCERPT_CHARS = 200


class ProviderAdapter(ABC):
    """Translate chat requests to and from one provider's wire format."""

    provider_id: ClassVar[ProviderId]
    default_base_url: ClassVar[str]

    def base_url(self, cfg: ProviderConfig) -> str:
        return (cfg.base_url or self.default_base_url).rstrip("/")

    @abstractmethod
    def translate(
        self, req: ChatRequest, cfg: ProviderConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Return (url, headers, json_body) for the chat request."""
        ...

    @abstractmethod
    def _reply_from(self, data: dict[str, Any]) -> str:
        """Pull the reply text out of a decoded success envelope.

        Raise ``MalformedResponseError`` when the reply field is missing.
        """
        ...

    def extract_reply(self, raw: bytes, cfg: ProviderConfig) -> str:
        data = self._decode(raw)
        return self._reply_from(data)

    # ------------------------------------------------------------------
    # Helpers shared by the concrete adapters
    # ------------------------------------------------------------------

    def _decode(self, raw: bytes) -> dict[str, Any]:
        try:
            data = json.loads(raw)
        except ValueError:
            excerpt = raw[:_EXCERPT_CHARS].decode("utf-8", errors="replace")
            raise ParseFailureError(self.provider_id.value, excerpt) from None

        if not isinstance(data, dict):
            raise MalformedResponseError(self.provider_id.value, field="<root>")

        if "error" in data and data["error"]:
            err = data["error"]
            if isinstance(err, dict):
                message = err.get("message") or json.dumps(err)
            else:
                message = str(err)
            raise ProviderRejectedError(str(message), self.provider_id.value)

        return data

    def _missing(self, field: str) -> MalformedResponseError:
        return MalformedResponseError(self.provider_id.value, field=field)

    @staticmethod
    def _dialogue(req: ChatRequest) -> list[tuple[str, str]]:
        """History (system turns dropped) followed by the new user message."""
        turns = [
            (t.role.value, t.content) for t in req.history if t.role is not ChatRole.SYSTEM
        ]
        turns.append((ChatRole.USER.value, req.message))
        return turns


def redact_url(url: str) -> str:
    """Strip the query string so keys passed as ``?key=`` never reach the logs."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))

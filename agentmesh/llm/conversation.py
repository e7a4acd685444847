"""LLM layer — Conversation manager.

One chat abstraction over every supported provider:

    manager = ConversationManager(lambda: settings.llm, lambda: settings.agent.system_prompt)
    reply = await manager.chat("Turn on the fan", extra_context=build_context(slots))

``chat()`` never raises for LLM-path failures.  Unknown providers, transport
errors, provider error envelopes and malformed bodies all come back as reply
text, and history is only touched when a real reply arrives.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import httpx

from agentmesh.config import ProviderConfig
from agentmesh.exceptions import LLMError, TransportError
from agentmesh.llm.history import ConversationHistory
from agentmesh.llm.models import ChatRequest, ChatRole, ChatTurn
from agentmesh.llm.providers import get_adapter, redact_url
from agentmesh.logging import get_logger

log = get_logger(__name__)


class ConversationManager:
    """Bounded-history chat session against the configured provider.

    Args:
        config_provider:  Returns the current ``ProviderConfig``.  Called once
                          per ``chat()`` so settings edits apply to the next call.
        prompt_provider:  Returns the personality (system) prompt.
        history:          Rolling history; a fresh one of capacity 10 if omitted.
        http_client:      Injected ``httpx.AsyncClient`` (tests).  When omitted
                          the manager creates and owns one.
    """

    def __init__(
        self,
        config_provider: Callable[[], ProviderConfig],
        prompt_provider: Callable[[], str],
        history: ConversationHistory | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config_provider = config_provider
        self._prompt_provider = prompt_provider
        self._history = history if history is not None else ConversationHistory()
        self._http = http_client
        self._owns_http = http_client is None
        self._lock = asyncio.Lock()

    @property
    def history(self) -> ConversationHistory:
        return self._history

    def _get_http(self) -> httpx.AsyncClient:
        """Lazily create the async HTTP client."""
        if self._http is None or (self._owns_http and self._http.is_closed):
            self._http = httpx.AsyncClient()
            self._owns_http = True
        return self._http

    def system_prompt(self, extra_context: str = "") -> str:
        prompt = self._prompt_provider()
        if extra_context:
            prompt = f"{prompt}\n\n{extra_context}"
        return prompt

    async def chat(self, user_message: str, extra_context: str = "") -> str:
        async with self._lock:
            cfg = self._config_provider()
            try:
                reply = await self._send(user_message, extra_context, cfg)
            except LLMError as exc:
                log.warning(
                    "llm_request_failed",
                    provider=cfg.provider,
                    error=exc.message,
                    **{k: v for k, v in exc.context.items() if k != "provider_id"},
                )
                return exc.reply_text

            self._history.append(ChatTurn(ChatRole.USER, user_message))
            self._history.append(ChatTurn(ChatRole.ASSISTANT, reply))
            return reply

    async def _send(self, user_message: str, extra_context: str, cfg: ProviderConfig) -> str:
        adapter = get_adapter(cfg.provider)
        request = ChatRequest(
            system_prompt=self.system_prompt(extra_context),
            message=user_message,
            history=self._history.turns(),
        )
        url, headers, body = adapter.translate(request, cfg)

        start = time.time()
        try:
            resp = await self._get_http().post(
                url, headers=headers, json=body, timeout=cfg.timeout_seconds
            )
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or type(exc).__name__, cfg.provider) from exc

        log.info(
            "llm_request_done",
            provider=cfg.provider,
            model=cfg.model,
            url=redact_url(url),
            status=resp.status_code,
            latency_ms=round((time.time() - start) * 1000, 1),
        )
        return adapter.extract_reply(resp.content, cfg)

    def reset(self) -> None:
        """Forget the conversation (the ``/clear`` command)."""
        self._history.clear()
        log.info("conversation_reset")

    async def close(self) -> None:
        if self._owns_http and self._http is not None:
            if not self._http.is_closed:
                await self._http.aclose()
            self._http = None

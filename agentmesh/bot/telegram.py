"""Bot layer — Telegram polling bot.

Talks to the Bot API with raw ``httpx``: short polling of ``getUpdates``
(``timeout=0``, repeated every ``telegram.poll_interval`` seconds) with offset
tracking, and ``sendMessage`` with Markdown, retried as plain text when the
markup is rejected.  Plain text goes through
:meth:`AgentContext.handle_message`; a handful of slash commands are handled
locally:

    /start, /help   command list
    /status         fresh sensor readings
    /sensors        configured sensor slots
    /clear          forget the conversation
    /reset          forget the conversation and reload slot definitions

Only chats listed in ``telegram.allowed_chat_ids`` are served (empty list =
everyone); other chats get an "Unauthorized" reply.  Failures of the Bot API
are logged and retried on the next poll.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from agentmesh.agent.context import AgentContext
from agentmesh.config import TelegramConfig
from agentmesh.logging import bind_device_context, clear_chat_context, get_logger

log = get_logger(__name__)

API_BASE = "https://api.telegram.org"

HELP_TEXT = (
    "*Commands*\n\n"
    "/status - Sensor readings\n"
    "/sensors - List sensors\n"
    "/clear - Clear chat history\n"
    "/reset - Clear history and reload I/O slots\n\n"
    "Or just chat naturally!"
)

UNAUTHORIZED_TEXT = "\u26d4 Unauthorized."


class TelegramBot:
    """Polling Telegram front end for one :class:`AgentContext`."""

    def __init__(
        self,
        context: AgentContext,
        config: TelegramConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        token = config.token.get_secret_value() if config.token else ""
        self._context = context
        self._config = config
        self._client = http_client or httpx.AsyncClient(
            base_url=f"{API_BASE}/bot{token}", timeout=config.timeout_seconds
        )
        self._owns_client = http_client is None
        self._offset = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def offset(self) -> int:
        return self._offset

    def is_allowed(self, chat_id: str) -> bool:
        allowed = self._config.allowed_chat_ids
        return not allowed or chat_id in allowed

    # ------------------------------------------------------------------
    # Bot API calls
    # ------------------------------------------------------------------

    async def send_message(self, chat_id: str, text: str) -> bool:
        """Send *text* as Markdown, resending it as plain text if Telegram rejects the markup."""
        resp = await self._post_message(chat_id, text, parse_mode="Markdown")
        if resp is not None and resp.status_code == 400:
            log.info("telegram_markdown_rejected", chat_id=chat_id)
            resp = await self._post_message(chat_id, text)
        if resp is None:
            return False
        if resp.status_code != 200:
            log.warning("telegram_send_rejected", chat_id=chat_id, status=resp.status_code)
            return False
        return True

    async def _post_message(
        self, chat_id: str, text: str, parse_mode: str | None = None
    ) -> httpx.Response | None:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        try:
            return await self._client.post("/sendMessage", json=payload)
        except httpx.HTTPError as exc:
            log.warning("telegram_send_failed", chat_id=chat_id, error=str(exc))
            return None

    async def _send_typing(self, chat_id: str) -> None:
        try:
            await self._client.post(
                "/sendChatAction", json={"chat_id": chat_id, "action": "typing"}
            )
        except httpx.HTTPError as exc:
            log.debug("telegram_typing_failed", error=str(exc))

    async def poll_once(self) -> int:
        """Fetch and handle pending updates.  Returns the number handled."""
        try:
            resp = await self._client.get(
                "/getUpdates", params={"offset": self._offset, "timeout": 0}
            )
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            log.warning("telegram_poll_failed", error=str(exc))
            return 0

        if not data.get("ok", False):
            log.warning("telegram_poll_rejected", description=data.get("description"))
            return 0

        handled = 0
        for update in data.get("result", []):
            self._offset = max(self._offset, int(update["update_id"]) + 1)
            message: dict[str, Any] = update.get("message") or {}
            text = message.get("text")
            chat = message.get("chat") or {}
            if not text or "id" not in chat:
                continue
            chat_id = str(chat["id"])
            if not self.is_allowed(chat_id):
                log.info("telegram_chat_rejected", chat_id=chat_id)
                await self.send_message(chat_id, UNAUTHORIZED_TEXT)
                continue
            bind_device_context(chat_id=chat_id)
            try:
                reply = await self.handle_text(chat_id, text)
            finally:
                clear_chat_context()
            await self.send_message(chat_id, reply)
            handled += 1
        return handled

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def handle_text(self, chat_id: str, text: str) -> str:
        text = text.strip()
        command = text.split()[0].split("@")[0].lower() if text.startswith("/") else ""

        if command in ("/start", "/help"):
            return HELP_TEXT
        if command == "/status":
            return await self._status()
        if command == "/sensors":
            return self._sensor_list()
        if command == "/clear":
            self._context.conversation.reset()
            return "Conversation history cleared."
        if command == "/reset":
            self._context.reset()
            return "History cleared and I/O slots reloaded."

        log.info("telegram_message", length=len(text))
        await self._send_typing(chat_id)
        outcome = await self._context.handle_message(text)
        return outcome.reply

    async def _status(self) -> str:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._context.sensor_reader.read_all)
        lines = ["*Current Status*", ""]
        for s in self._context.slots.sensors():
            if not s.enabled:
                continue
            value = f"{s.display_text} {s.unit}".strip()
            lines.append(f"• {s.name}: `{value}`")
        if len(lines) == 2:
            lines.append("No sensors configured.")
        return "\n".join(lines)

    def _sensor_list(self) -> str:
        sensors = self._context.slots.sensors()
        if not sensors:
            return "No sensors configured."
        lines = ["*Sensors*", ""]
        for s in sensors:
            state = "" if s.enabled else " (disabled)"
            lines.append(f"• {s.name} [{s.kind.value}]{state}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def notify_online(self) -> None:
        if not self._config.notify_on_start or not self._config.allowed_chat_ids:
            return
        chat_id = self._config.allowed_chat_ids[0]
        await self.send_message(
            chat_id, f"*Agent online*\nDevice: `{self._context.device_id}`"
        )

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="telegram_bot")
        log.info("telegram_bot_started", allowed_chats=len(self._config.allowed_chat_ids))

    async def _run(self) -> None:
        await self.notify_online()
        while True:
            try:
                await self.poll_once()
            except Exception:
                log.exception("telegram_handler_error")
            await asyncio.sleep(self._config.poll_interval)

    async def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self._owns_client:
            await self._client.aclose()
        log.info("telegram_bot_stopped")

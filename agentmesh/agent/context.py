"""Agent layer — AgentContext, the single owner of the runtime objects.

Built once from :class:`~agentmesh.config.Settings` and handed to every front
end (``app.state.context`` for the HTTP API, the Telegram bot constructor,
the CLI).  Nothing else constructs slot tables, conversation managers or
mesh bridges.

Usage::

    context = AgentContext(settings)
    await context.start()                  # sampling task + mesh bridge
    outcome = await context.handle_message("Turn the fan on")
    await context.stop()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import httpx

from agentmesh.agent.actions import ActionExecutor, ActionResult
from agentmesh.config import Settings
from agentmesh.io.interfaces import GPIOInterface, build_backend
from agentmesh.io.models import ActuatorSlotConfig, SensorSlotConfig
from agentmesh.io.sensors import SensorReader, build_context
from agentmesh.io.slots import SlotTable
from agentmesh.llm.conversation import ConversationManager
from agentmesh.llm.history import ConversationHistory
from agentmesh.logging import bind_device_context, get_logger
from agentmesh.mesh.bridge import MeshBridge, MeshState
from agentmesh.mesh.identity import resolve_device_id
from agentmesh.mesh.transport import MeshTransport, PahoTransport

log = get_logger(__name__)


@dataclass
class ChatOutcome:
    reply: str
    actions: list[ActionResult] = field(default_factory=list)


class AgentContext:
    """Wires settings, I/O, the conversation manager and the mesh bridge.

    Args:
        settings:     Loaded settings.  Replaced (not mutated) on updates.
        gpio:         Hardware backend; built from ``io.backend`` if omitted.
        transport:    Mesh transport; ``PahoTransport`` if omitted.
        http_client:  Shared ``httpx.AsyncClient`` for LLM calls (tests).
        persist:      Write settings updates to the config file.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        gpio: GPIOInterface | None = None,
        transport: MeshTransport | None = None,
        http_client: httpx.AsyncClient | None = None,
        persist: bool = True,
    ) -> None:
        self.settings = settings
        self._persist = persist
        self.device_id = resolve_device_id(settings.mesh.device_id)

        self.gpio = gpio if gpio is not None else build_backend(settings.io.backend)
        self.slots = SlotTable(
            self.gpio,
            settings.slots.sensors,
            settings.slots.actuators,
            max_slots=settings.io.max_slots,
        )
        self.sensor_reader = SensorReader(self.slots, self.gpio)
        self.executor = ActionExecutor(self.slots)
        self.conversation = ConversationManager(
            config_provider=lambda: self.settings.llm,
            prompt_provider=lambda: self.settings.agent.system_prompt,
            history=ConversationHistory(settings.agent.history_size),
            http_client=http_client,
        )

        self.mesh: MeshBridge | None = None
        if settings.mesh.enabled and settings.mesh.host:
            self.mesh = MeshBridge(
                self.slots,
                transport if transport is not None else PahoTransport(),
                settings.mesh,
                device_id=self.device_id,
                publish_interval=settings.mesh.publish_interval or settings.io.read_interval,
            )

        self._sampler: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def mesh_state(self) -> MeshState | None:
        return self.mesh.state if self.mesh is not None else None

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def context_summary(self) -> str:
        return build_context(self.slots)

    async def handle_message(self, message: str) -> ChatOutcome:
        """Chat with the LLM using a fresh I/O summary, then apply its actions."""
        reply = await self.conversation.chat(message, self.context_summary())
        actions = self.executor.apply_actions(reply)
        return ChatOutcome(reply=reply, actions=actions)

    # ------------------------------------------------------------------
    # Settings and slots
    # ------------------------------------------------------------------

    def update_settings(self, changes: dict[str, Any]) -> Settings:
        """Validate, persist and apply a partial settings update.

        LLM and prompt changes apply to the next chat call.  Slot changes are
        reloaded immediately.  Mesh, Telegram and server changes take effect
        on the next start.
        """
        new = self.settings.updated(changes)
        if "slots" in changes:
            self.slots.validate(new.slots.sensors, new.slots.actuators)
        if self._persist:
            new.save()
        self.settings = new
        if "slots" in changes:
            self.reload_slots()
        log.info("settings_updated", sections=sorted(changes))
        return new

    def replace_slots(
        self,
        sensors: list[SensorSlotConfig],
        actuators: list[ActuatorSlotConfig],
    ) -> None:
        self.update_settings(
            {
                "slots": {
                    "sensors": [s.model_dump(mode="json") for s in sensors],
                    "actuators": [a.model_dump(mode="json") for a in actuators],
                }
            }
        )

    def reload_slots(self) -> None:
        self.slots.load(self.settings.slots.sensors, self.settings.slots.actuators)

    def reset(self) -> None:
        """Clear the conversation and reload slot definitions (the ``/reset`` command)."""
        self.conversation.reset()
        self.reload_slots()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        bind_device_context(device_id=self.device_id)
        self._stop_event.clear()
        if self._sampler is None or self._sampler.done():
            self._sampler = asyncio.create_task(self._sample_loop(), name="sensor_sampler")
        if self.mesh is not None:
            await self.mesh.start()
        log.info(
            "agent_started",
            backend=self.gpio.name,
            mesh=self.mesh is not None,
            provider=self.settings.llm.provider,
        )

    async def _sample_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while not self._stop_event.is_set():
            try:
                await loop.run_in_executor(None, self.sensor_reader.read_all)
            except Exception:
                log.exception("sensor_sampling_error")
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.settings.io.read_interval
                )
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        self._stop_event.set()
        if self._sampler is not None and not self._sampler.done():
            self._sampler.cancel()
            try:
                await self._sampler
            except asyncio.CancelledError:
                pass
        self._sampler = None
        if self.mesh is not None:
            await self.mesh.stop()
        await self.conversation.close()
        self.gpio.cleanup()
        log.info("agent_stopped")

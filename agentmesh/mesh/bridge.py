"""Mesh layer — Device mesh bridge.

Replicates state between independent devices over MQTT:

Outbound
    - every publish interval: each enabled local sensor's display text, then
      the heartbeat (``status``)
    - every tick: each enabled ``mqtt`` actuator whose (on, level) differs
      from the last value successfully published, sent as a command to the
      owning device (``"{remoteId}/{name}"`` → ``{root}/{remoteId}/cmd/{name}``)

Inbound
    - ``{root}/{self}/cmd/{name}`` → :meth:`SlotTable.set_actuator`
    - ``{root}/{self}/sensors/...`` → ignored (our own echo)
    - ``{root}/{other}/sensors/{name}`` → the ``mqtt_remote`` slot named
      ``"{other}/{name}"``, if one is configured

``tick()`` is synchronous and blocking; :meth:`MeshBridge.run` calls it from
the default executor so the event loop (and the chat surfaces) never wait on
the broker.  Connection failures move the bridge back to DISCONNECTED and
retry with exponential backoff.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, Field, StrictBool, ValidationError

from agentmesh.config import MeshConfig
from agentmesh.exceptions import MeshError
from agentmesh.io.models import FULL_SCALE, ActuatorKind, SensorKind
from agentmesh.io.slots import SlotTable
from agentmesh.logging import get_logger
from agentmesh.mesh.identity import heartbeat
from agentmesh.mesh.topics import CMD, SENSORS, MeshTopics, topic_matches
from agentmesh.mesh.transport import MeshTransport

log = get_logger(__name__)

_LOOP_TIMEOUT = 0.05
_CONNECT_TIMEOUT = 10.0
_STOP_TIMEOUT = 15.0


class MeshState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class MeshCommand(BaseModel):
    """Payload of a ``cmd/{name}`` message."""

    state: StrictBool = False
    pwm: Annotated[int, Field(ge=0, le=FULL_SCALE)] | None = None


class ReconnectBackoff:
    """1 s, 2 s, 4 s ... capped at *max_delay*; ``reset()`` after a success."""

    def __init__(self, initial: float = 1.0, max_delay: float = 30.0) -> None:
        self._initial = initial
        self._max_delay = max_delay
        self._next = initial

    def next_delay(self) -> float:
        delay = self._next
        self._next = min(self._next * 2, self._max_delay)
        return delay

    def reset(self) -> None:
        self._next = self._initial


def command_payload(on: bool, level: int) -> str:
    payload: dict[str, object] = {"state": on}
    if level != (FULL_SCALE if on else 0):
        payload["pwm"] = level
    return json.dumps(payload, separators=(",", ":"))


class MeshBridge:
    """Keeps the slot table and the mesh bus in sync.

    Args:
        slots:             Shared slot table.
        transport:         MQTT transport (``PahoTransport`` in production).
        config:            ``mesh`` settings section.
        device_id:         This device's namespace on the bus.
        publish_interval:  Seconds between sensor/heartbeat publishes.
        clock:             Monotonic clock (injectable for tests).
        heartbeat_factory: Builds the heartbeat dict.
    """

    def __init__(
        self,
        slots: SlotTable,
        transport: MeshTransport,
        config: MeshConfig,
        device_id: str,
        publish_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        heartbeat_factory: Callable[[], dict[str, object]] = heartbeat,
    ) -> None:
        self._slots = slots
        self._transport = transport
        self._config = config
        self._topics = MeshTopics(root=config.topic_root, device_id=device_id)
        self._publish_interval = publish_interval
        self._clock = clock
        self._heartbeat_factory = heartbeat_factory

        self._state = MeshState.DISCONNECTED
        self._backoff = ReconnectBackoff(max_delay=config.reconnect_max_delay)
        self._next_attempt = 0.0
        self._connect_started = 0.0
        self._last_publish: float | None = None
        self._shadow: dict[str, tuple[bool, int]] = {}

        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        # Read from the executor thread running tick().
        self._closing = False

        transport.on_message = self.handle_message

    @property
    def state(self) -> MeshState:
        return self._state

    @property
    def topics(self) -> MeshTopics:
        return self._topics

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> None:
        """One step of the state machine plus any due publishing."""
        now = self._clock()
        try:
            if self._state is MeshState.DISCONNECTED:
                if now >= self._next_attempt:
                    self._start_connect(now)
                return

            self._transport.loop(_LOOP_TIMEOUT)

            if self._state is MeshState.CONNECTING:
                if self._transport.is_connected:
                    self._on_connected()
                elif now - self._connect_started > _CONNECT_TIMEOUT:
                    self._fail("connect timed out", now)
                return

            if not self._transport.is_connected:
                self._fail("connection lost", now)
                return

            if self._last_publish is None or now - self._last_publish >= self._publish_interval:
                self._last_publish = now
                self.publish_sensors()
                self.publish_heartbeat()
            self.publish_actuator_changes()
        except MeshError as exc:
            self._fail(exc.message, now)

    def _start_connect(self, now: float) -> None:
        self._state = MeshState.CONNECTING
        self._connect_started = now
        password = self._config.password.get_secret_value() if self._config.password else None
        log.info("mesh_connecting", host=self._config.host, port=self._config.port)
        self._transport.connect(
            self._config.host,
            self._config.port,
            self._topics.device_id,
            username=self._config.username,
            password=password,
            keepalive=self._config.keepalive,
        )
        if self._closing:
            # stop() gave up waiting for this connect; drop the late connection.
            self._transport.disconnect()
            self._state = MeshState.DISCONNECTED
            log.info("mesh_connect_discarded", host=self._config.host)

    def _on_connected(self) -> None:
        for topic in self._topics.subscriptions():
            if not self._transport.subscribe(topic):
                log.warning("mesh_subscribe_failed", topic=topic)
        self._state = MeshState.CONNECTED
        self._backoff.reset()
        self._last_publish = None
        log.info("mesh_connected", host=self._config.host, device_id=self._topics.device_id)

    def _fail(self, reason: str, now: float) -> None:
        delay = self._backoff.next_delay()
        self._next_attempt = now + delay
        self._state = MeshState.DISCONNECTED
        self._transport.disconnect()
        log.warning("mesh_disconnected", host=self._config.host, reason=reason, retry_in=delay)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def publish_sensors(self) -> int:
        sent = 0
        for s in self._slots.sensors():
            if not s.enabled or s.kind is SensorKind.MQTT_REMOTE:
                continue
            if self._transport.publish(self._topics.sensor(s.name), s.display_text):
                sent += 1
        return sent

    def publish_heartbeat(self) -> bool:
        payload = json.dumps(self._heartbeat_factory(), separators=(",", ":"))
        return self._transport.publish(self._topics.status(), payload)

    def publish_actuator_changes(self) -> int:
        """Send a command for every ``mqtt`` actuator that changed since its last publish."""
        sent = 0
        for a in self._slots.actuators():
            if not a.enabled or a.kind is not ActuatorKind.MQTT:
                continue
            key = a.name.lower()
            current = (a.on, a.level)
            if self._shadow.get(key, (False, 0)) == current:
                continue
            remote_id, sep, remote_name = a.name.partition("/")
            if not sep or not remote_id or not remote_name:
                continue
            topic = self._topics.command_for(remote_id, remote_name)
            if self._transport.publish(topic, command_payload(a.on, a.level)):
                self._shadow[key] = current
                sent += 1
                log.debug("mesh_command_sent", topic=topic, on=a.on, level=a.level)
        return sent

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_message(self, topic: str, payload: str) -> None:
        if not any(topic_matches(p, topic) for p in self._topics.subscriptions()):
            return
        parsed = self._topics.parse(topic)
        if parsed is None:
            return

        if parsed.device_id == self._topics.device_id:
            if parsed.channel == CMD:
                self._apply_command(parsed.name, payload)
            return

        if parsed.channel == SENSORS:
            slot_name = f"{parsed.device_id}/{parsed.name}"
            if not self._slots.update_remote_sensor(slot_name, payload):
                log.debug("mesh_sensor_unmapped", slot=slot_name)

    def _apply_command(self, name: str, payload: str) -> None:
        try:
            command = MeshCommand.model_validate_json(payload)
        except ValidationError as exc:
            log.warning("mesh_command_invalid", actuator=name, error=exc.errors()[0]["msg"])
            return
        applied = self._slots.set_actuator(name, command.state, command.pwm)
        log.info("mesh_command_received", actuator=name, state=command.state, pwm=command.pwm, applied=applied)

    # ------------------------------------------------------------------
    # Async lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._closing = False
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run(), name="mesh_bridge")

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        while not self._stop_event.is_set():
            try:
                await loop.run_in_executor(None, self.tick)
            except Exception:
                log.exception("mesh_tick_error")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._config.tick_interval)
            except asyncio.TimeoutError:
                pass

    async def stop(self, timeout: float = _STOP_TIMEOUT) -> None:
        """Stop ticking and disconnect.

        The tick already running in the executor (possibly blocked inside
        ``connect()``) is awaited for up to *timeout* seconds before the
        transport is disconnected.  Past that the task is cancelled and the
        tick discards its connection itself when ``connect()`` returns.
        """
        self._closing = True
        self._stop_event.set()
        if self._task is not None and not self._task.done():
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                log.warning("mesh_stop_timeout", timeout=timeout)
            except asyncio.CancelledError:
                pass
        self._task = None
        self._transport.disconnect()
        self._state = MeshState.DISCONNECTED
        log.info("mesh_stopped")

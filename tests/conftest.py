"""Shared pytest fixtures for the agentmesh test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from agentmesh.config import Settings, override_settings
from agentmesh.exceptions import MeshDisconnectedError
from agentmesh.io.interfaces import MockGPIO
from agentmesh.io.models import ActuatorSlotConfig, SensorSlotConfig
from agentmesh.io.slots import SlotTable
from agentmesh.mesh.topics import topic_matches
from agentmesh.mesh.transport import MeshTransport

SELF_ID = "node-self"


# ---------------------------------------------------------------------------
# Mesh transport double
# ---------------------------------------------------------------------------


class FakeTransport(MeshTransport):
    """In-memory MQTT stand-in.

    ``inject()`` queues an inbound message; it is delivered on the next
    ``loop()`` if it matches a subscription, exactly as a broker would.
    """

    def __init__(self) -> None:
        self.connect_ok = True
        self.publish_ok = True
        self.connected = False
        self.connect_calls: list[dict[str, Any]] = []
        self.disconnects = 0
        self.subscriptions: list[str] = []
        self.published: list[tuple[str, str]] = []
        self.inbox: list[tuple[str, str]] = []

    def connect(self, host, port, client_id, *, username=None, password=None, keepalive=60):
        self.connect_calls.append(
            {"host": host, "port": port, "client_id": client_id, "username": username}
        )
        if not self.connect_ok:
            raise MeshDisconnectedError(host, "connection refused")
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False
        self.subscriptions.clear()
        self.disconnects += 1

    def subscribe(self, topic: str) -> bool:
        self.subscriptions.append(topic)
        return True

    def publish(self, topic: str, payload: str) -> bool:
        if not self.connected or not self.publish_ok:
            return False
        self.published.append((topic, payload))
        return True

    def loop(self, timeout: float) -> None:
        pending, self.inbox = self.inbox, []
        for topic, payload in pending:
            if self.on_message and any(topic_matches(s, topic) for s in self.subscriptions):
                self.on_message(topic, payload)

    @property
    def is_connected(self) -> bool:
        return self.connected

    def inject(self, topic: str, payload: str) -> None:
        self.inbox.append((topic, payload))

    def published_to(self, topic: str) -> list[str]:
        return [p for t, p in self.published if t == topic]


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


# ---------------------------------------------------------------------------
# I/O
# ---------------------------------------------------------------------------


def _sensor_defs() -> list[SensorSlotConfig]:
    return [
        SensorSlotConfig(name="Temp", kind="mock", unit="C"),
        SensorSlotConfig(name="Door", kind="digital", pin=5),
        SensorSlotConfig(name="Battery", kind="voltage", pin=34),
        SensorSlotConfig(name="Lux", kind="i2c_raw", i2c_address=0x23),
        SensorSlotConfig(name="node-b/temp", kind="mqtt_remote", unit="C"),
        SensorSlotConfig(name="node-c/hum", kind="mqtt_remote", enabled=False),
    ]


def _actuator_defs() -> list[ActuatorSlotConfig]:
    return [
        ActuatorSlotConfig(name="LED", kind="digital", pin=2),
        ActuatorSlotConfig(name="Fan", kind="pwm", pin=4),
        ActuatorSlotConfig(name="Relay", kind="bus", i2c_address=0x20),
        ActuatorSlotConfig(name="node-b/pump", kind="mqtt"),
        ActuatorSlotConfig(name="Heater", kind="digital", pin=6, enabled=False),
    ]


@pytest.fixture
def sensor_defs() -> list[SensorSlotConfig]:
    return _sensor_defs()


@pytest.fixture
def actuator_defs() -> list[ActuatorSlotConfig]:
    return _actuator_defs()


@pytest.fixture
def mock_gpio() -> MockGPIO:
    gpio = MockGPIO()
    gpio.i2c_devices[0x20] = b"\x00"
    gpio.i2c_devices[0x23] = b"\x01\x2c"
    return gpio


@pytest.fixture
def slot_table(mock_gpio: MockGPIO) -> SlotTable:
    return SlotTable(mock_gpio, _sensor_defs(), _actuator_defs())


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    settings = Settings(
        llm={"provider": "openai", "model": "gpt-4o-mini", "api_key": "sk-test"},
        mesh={"enabled": True, "host": "broker.local", "device_id": SELF_ID},
        io={"backend": "mock", "read_interval": 5.0},
        slots={
            "sensors": [s.model_dump(mode="json") for s in _sensor_defs()],
            "actuators": [a.model_dump(mode="json") for a in _actuator_defs()],
        },
        logging={"level": "debug", "format": "console"},
    )
    settings.save(tmp_path / "config.yaml")
    override_settings(settings)
    return settings

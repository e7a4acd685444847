"""I/O layer — slot definitions and runtime snapshots.

A *slot* is one named sensor or actuator entry in the device's I/O table.
Local slots are backed by hardware; remote slots (``mqtt_remote`` sensors,
``mqtt`` actuators) are named ``"{remoteDeviceId}/{name}"`` and are fed or
drained by the mesh bridge instead.

Config models (``SensorSlotConfig``, ``ActuatorSlotConfig``) are what gets
persisted.  Snapshot models (``SensorSnapshot``, ``ActuatorState``) are the
immutable copies handed out by :class:`~agentmesh.io.slots.SlotTable`.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

FULL_SCALE = 255


class SensorKind(str, Enum):
    ANALOG = "analog"
    DIGITAL = "digital"
    VOLTAGE = "voltage"
    I2C_RAW = "i2c_raw"
    MOCK = "mock"
    MQTT_REMOTE = "mqtt_remote"


class ActuatorKind(str, Enum):
    DIGITAL = "digital"
    PWM = "pwm"
    BUS = "bus"
    MQTT = "mqtt"


# ---------------------------------------------------------------------------
# Persisted configuration
# ---------------------------------------------------------------------------


class SensorSlotConfig(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    kind: SensorKind
    enabled: bool = True
    pin: int | None = Field(default=None, ge=0, le=255)
    i2c_address: Annotated[int, Field(ge=0x00, le=0x7F)] | None = None
    unit: str = ""


class ActuatorSlotConfig(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    kind: ActuatorKind
    enabled: bool = True
    pin: int | None = Field(default=None, ge=0, le=255)
    i2c_address: Annotated[int, Field(ge=0x00, le=0x7F)] | None = None


# ---------------------------------------------------------------------------
# Runtime snapshots
# ---------------------------------------------------------------------------


class SensorSnapshot(BaseModel):
    """Last known reading of one sensor slot."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: SensorKind
    enabled: bool
    pin: int | None = None
    i2c_address: int | None = None
    value: float = 0.0
    display_text: str = ""
    unit: str = ""

    @property
    def is_remote(self) -> bool:
        return self.kind is SensorKind.MQTT_REMOTE


class ActuatorState(BaseModel):
    """Current state of one actuator slot."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: ActuatorKind
    enabled: bool
    pin: int | None = None
    i2c_address: int | None = None
    on: bool = False
    level: Annotated[int, Field(ge=0, le=FULL_SCALE)] = 0

    @property
    def is_remote(self) -> bool:
        return self.kind is ActuatorKind.MQTT

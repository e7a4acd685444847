"""I/O layer — the slot table.

``SlotTable`` is the single state store for sensor readings and actuator
states.  Three callers change actuators (the action executor, the mesh
command handler, the HTTP API) and all of them go through
:meth:`SlotTable.set_actuator`.  Sensor values are written by the sampling
task (local slots) and the mesh bridge (remote slots).

Every public method takes the table's ``RLock``; readers get frozen
snapshots, never the live records.  Hardware writes happen under the lock so
that the recorded state always matches what was last driven onto the pin.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass

from agentmesh.exceptions import ConfigError, IOBackendError, UnknownActuatorError
from agentmesh.io.interfaces import GPIOInterface
from agentmesh.io.models import (
    FULL_SCALE,
    ActuatorKind,
    ActuatorSlotConfig,
    ActuatorState,
    SensorKind,
    SensorSlotConfig,
    SensorSnapshot,
)
from agentmesh.logging import get_logger

log = get_logger(__name__)

DEFAULT_MAX_SLOTS = 8


@dataclass
class _SensorSlot:
    config: SensorSlotConfig
    value: float = 0.0
    display_text: str = ""

    def snapshot(self) -> SensorSnapshot:
        c = self.config
        return SensorSnapshot(
            name=c.name,
            kind=c.kind,
            enabled=c.enabled,
            pin=c.pin,
            i2c_address=c.i2c_address,
            unit=c.unit,
            value=self.value,
            display_text=self.display_text,
        )


@dataclass
class _ActuatorSlot:
    config: ActuatorSlotConfig
    on: bool = False
    level: int = 0

    def snapshot(self) -> ActuatorState:
        c = self.config
        return ActuatorState(
            name=c.name,
            kind=c.kind,
            enabled=c.enabled,
            pin=c.pin,
            i2c_address=c.i2c_address,
            on=self.on,
            level=self.level,
        )


class SlotTable:
    """Thread-safe table of sensor and actuator slots.

    Args:
        gpio:       Hardware backend used for local actuators.
        sensors:    Initial sensor slot definitions.
        actuators:  Initial actuator slot definitions.
        max_slots:  Upper bound for each of the two lists.
    """

    def __init__(
        self,
        gpio: GPIOInterface,
        sensors: Sequence[SensorSlotConfig] = (),
        actuators: Sequence[ActuatorSlotConfig] = (),
        max_slots: int = DEFAULT_MAX_SLOTS,
    ) -> None:
        self._gpio = gpio
        self._max_slots = max_slots
        self._lock = threading.RLock()
        self._sensors: list[_SensorSlot] = []
        self._actuators: list[_ActuatorSlot] = []
        self.load(sensors, actuators)

    @property
    def gpio(self) -> GPIOInterface:
        return self._gpio

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def load(
        self,
        sensors: Sequence[SensorSlotConfig],
        actuators: Sequence[ActuatorSlotConfig],
    ) -> None:
        """Replace the slot definitions.  All runtime values are reset."""
        self.validate(sensors, actuators)

        with self._lock:
            self._sensors = [_SensorSlot(config=c) for c in sensors]
            self._actuators = [_ActuatorSlot(config=c) for c in actuators]
            self._setup_pins()

        log.info("slots_loaded", sensors=len(sensors), actuators=len(actuators))

    def validate(
        self,
        sensors: Sequence[SensorSlotConfig],
        actuators: Sequence[ActuatorSlotConfig],
    ) -> None:
        """Raise ConfigError unless the definitions fit this table."""
        if len(sensors) > self._max_slots or len(actuators) > self._max_slots:
            raise ConfigError(
                f"At most {self._max_slots} sensors and {self._max_slots} actuators are supported",
                context={"sensors": len(sensors), "actuators": len(actuators)},
            )
        for group in (sensors, actuators):
            names = [s.name.lower() for s in group]
            if len(names) != len(set(names)):
                raise ConfigError("Slot names must be unique (case-insensitive)")

    def _setup_pins(self) -> None:
        for s in self._sensors:
            c = s.config
            if c.enabled and c.kind is SensorKind.DIGITAL and c.pin is not None:
                self._safe_setup(c.name, self._gpio.setup_input, c.pin)
        for a in self._actuators:
            c = a.config
            if c.enabled and c.kind in (ActuatorKind.DIGITAL, ActuatorKind.PWM) and c.pin is not None:
                self._safe_setup(c.name, self._gpio.setup_output, c.pin)

    @staticmethod
    def _safe_setup(name: str, setup, pin: int) -> None:
        try:
            setup(pin)
        except IOBackendError as exc:
            log.warning("pin_setup_failed", slot=name, pin=pin, error=exc.reason)

    def sensor_configs(self) -> list[SensorSlotConfig]:
        with self._lock:
            return [s.config for s in self._sensors]

    def actuator_configs(self) -> list[ActuatorSlotConfig]:
        with self._lock:
            return [a.config for a in self._actuators]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def sensors(self) -> list[SensorSnapshot]:
        with self._lock:
            return [s.snapshot() for s in self._sensors]

    def actuators(self) -> list[ActuatorState]:
        with self._lock:
            return [a.snapshot() for a in self._actuators]

    def find_actuator(self, name: str) -> ActuatorState | None:
        """Case-insensitive lookup; disabled slots are returned too."""
        with self._lock:
            slot = self._find_actuator(name)
            return slot.snapshot() if slot is not None else None

    def get_actuator(self, name: str) -> ActuatorState:
        state = self.find_actuator(name)
        if state is None:
            raise UnknownActuatorError(name)
        return state

    def _find_actuator(self, name: str) -> _ActuatorSlot | None:
        key = name.lower()
        for slot in self._actuators:
            if slot.config.name.lower() == key:
                return slot
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_actuator(self, name: str, on: bool, level: int | None = None) -> bool:
        """Drive an actuator.  Returns False when unknown, disabled or the write fails.

        ``level`` defaults to full scale when *on* and 0 otherwise, and is
        clamped to 0–255.  ``mqtt`` actuators only record the new state; the
        mesh bridge publishes the change.
        """
        if level is None:
            level = FULL_SCALE if on else 0
        level = max(0, min(FULL_SCALE, int(level)))

        with self._lock:
            slot = self._find_actuator(name)
            if slot is None:
                log.info("actuator_not_found", name=name)
                return False
            if not slot.config.enabled:
                log.info("actuator_disabled", name=slot.config.name)
                return False

            if slot.config.kind is ActuatorKind.DIGITAL:
                level = FULL_SCALE if on else 0

            try:
                self._drive(slot.config, on, level)
            except IOBackendError as exc:
                log.warning("actuator_write_failed", name=slot.config.name, error=exc.reason)
                return False

            slot.on = on
            slot.level = level

        log.info("actuator_set", name=slot.config.name, on=on, level=level)
        return True

    def _drive(self, c: ActuatorSlotConfig, on: bool, level: int) -> None:
        if c.kind is ActuatorKind.MQTT:
            return
        if c.kind is ActuatorKind.BUS:
            if c.i2c_address is None:
                raise IOBackendError(self._gpio.name, f"actuator '{c.name}' has no bus address")
            self._gpio.i2c_write(c.i2c_address, bytes([level if on else 0]))
            return
        if c.pin is None:
            raise IOBackendError(self._gpio.name, f"actuator '{c.name}' has no pin")
        if c.kind is ActuatorKind.DIGITAL:
            self._gpio.digital_write(c.pin, 1 if on else 0)
        else:
            self._gpio.pwm_write(c.pin, level)

    def update_sensor(self, name: str, value: float, display_text: str) -> bool:
        """Store a fresh reading for the sensor named *name* (exact match)."""
        with self._lock:
            for slot in self._sensors:
                if slot.config.name == name:
                    slot.value = value
                    slot.display_text = display_text
                    return True
        return False

    def update_remote_sensor(self, slot_name: str, payload: str) -> bool:
        """Route a mesh reading to the first enabled ``mqtt_remote`` slot named *slot_name*.

        The match is case-insensitive.  Returns False (and creates nothing)
        when no such slot exists.
        """
        try:
            value = float(payload)
        except ValueError:
            value = 0.0

        key = slot_name.lower()
        with self._lock:
            for slot in self._sensors:
                c = slot.config
                if c.enabled and c.kind is SensorKind.MQTT_REMOTE and c.name.lower() == key:
                    slot.value = value
                    slot.display_text = payload
                    return True
        return False

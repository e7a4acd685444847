"""I/O layer — sensor sampling and the LLM context summary."""

from __future__ import annotations

import random

from agentmesh.exceptions import IOBackendError
from agentmesh.io.interfaces import ADC_MAX, GPIOInterface
from agentmesh.io.models import ActuatorKind, SensorKind, SensorSlotConfig
from agentmesh.io.slots import SlotTable
from agentmesh.logging import get_logger

log = get_logger(__name__)

VREF = 3.3

ACTION_EXAMPLE = '{"actions":[{"name":"LED","state":true},{"name":"Fan","pwm":128}]}'


class SensorReader:
    """Samples every enabled local sensor into the slot table.

    ``mqtt_remote`` slots are skipped; the mesh bridge feeds them.  A sensor
    whose read fails is logged and keeps its previous value.
    """

    def __init__(self, slots: SlotTable, gpio: GPIOInterface, rng: random.Random | None = None) -> None:
        self._slots = slots
        self._gpio = gpio
        self._rng = rng or random.Random()

    def read_all(self) -> int:
        """Read all local sensors.  Returns how many were updated."""
        updated = 0
        for config in self._slots.sensor_configs():
            if not config.enabled or config.kind is SensorKind.MQTT_REMOTE:
                continue
            try:
                reading = self.read_one(config)
            except IOBackendError as exc:
                log.warning("sensor_read_failed", sensor=config.name, error=exc.reason)
                continue
            if reading is None:
                continue
            if self._slots.update_sensor(config.name, *reading):
                updated += 1
        return updated

    def read_one(self, config: SensorSlotConfig) -> tuple[float, str] | None:
        """Return (value, display_text), or None when the slot lacks a pin/address."""
        kind = config.kind
        if kind is SensorKind.MOCK:
            value = float(self._rng.randint(0, 99))
            return value, f"{value:.1f}"

        if kind is SensorKind.I2C_RAW:
            if config.i2c_address is None:
                return None
            data = self._gpio.i2c_read(config.i2c_address, 2)
            raw = int.from_bytes(data[:2], "big")
            return float(raw), str(raw)

        if config.pin is None:
            return None

        if kind is SensorKind.ANALOG:
            raw = self._gpio.analog_read(config.pin)
            return float(raw), str(raw)
        if kind is SensorKind.DIGITAL:
            level = self._gpio.digital_read(config.pin)
            return float(level), "HIGH" if level else "LOW"
        if kind is SensorKind.VOLTAGE:
            volts = self._gpio.analog_read(config.pin) * (VREF / ADC_MAX)
            return volts, f"{volts:.2f}V"
        return None


def build_context(slots: SlotTable) -> str:
    """Summarise sensors and actuators for the LLM system prompt."""
    lines = ["Current sensor readings:"]
    sensors = [s for s in slots.sensors() if s.enabled]
    for s in sensors:
        line = f"- {s.name}: {s.display_text}"
        if s.unit:
            line += f" {s.unit}"
        lines.append(line)
    if not sensors:
        lines.append("- No sensors configured")

    lines += ["", "Available actuators:"]
    actuators = [a for a in slots.actuators() if a.enabled]
    for a in actuators:
        line = f"- {a.name} ({a.kind.value}): {'ON' if a.on else 'OFF'}"
        if a.kind is ActuatorKind.PWM:
            line += f" [pwm={a.level}]"
        lines.append(line)
    if not actuators:
        lines.append("- No actuators configured")

    lines += [
        "",
        "To control actuators, reply with JSON commands in this format:",
        ACTION_EXAMPLE,
    ]
    return "\n".join(lines) + "\n"

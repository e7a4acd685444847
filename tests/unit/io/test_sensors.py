"""Unit tests — SensorReader and build_context."""

from __future__ import annotations

import random

import pytest

from agentmesh.io.interfaces import MockGPIO
from agentmesh.io.models import SensorSlotConfig
from agentmesh.io.sensors import SensorReader, build_context
from agentmesh.io.slots import SlotTable


def _by_name(table: SlotTable) -> dict:
    return {s.name: s for s in table.sensors()}


@pytest.fixture
def reader(slot_table: SlotTable, mock_gpio: MockGPIO) -> SensorReader:
    return SensorReader(slot_table, mock_gpio, rng=random.Random(7))


@pytest.mark.unit
class TestSensorReader:
    def test_reads_every_local_kind(self, reader: SensorReader, slot_table: SlotTable, mock_gpio: MockGPIO) -> None:
        mock_gpio.pin_values[5] = 1
        mock_gpio.analog_values[34] = 4095

        updated = reader.read_all()

        sensors = _by_name(slot_table)
        assert updated == 4
        assert sensors["Door"].display_text == "HIGH"
        assert sensors["Battery"].display_text == "3.30V"
        assert sensors["Lux"].value == 300.0
        assert sensors["Lux"].display_text == "300"
        assert 0 <= sensors["Temp"].value <= 99
        assert sensors["Temp"].display_text == f"{sensors['Temp'].value:.1f}"

    def test_remote_slots_untouched(self, reader: SensorReader, slot_table: SlotTable) -> None:
        reader.read_all()
        assert _by_name(slot_table)["node-b/temp"].display_text == ""

    def test_failed_read_keeps_previous_value(
        self, reader: SensorReader, slot_table: SlotTable, mock_gpio: MockGPIO
    ) -> None:
        mock_gpio.pin_values[5] = 1
        reader.read_all()
        mock_gpio.failing_pins.add(5)

        updated = reader.read_all()

        assert updated == 3
        assert _by_name(slot_table)["Door"].display_text == "HIGH"

    def test_missing_bus_device(self, mock_gpio: MockGPIO) -> None:
        table = SlotTable(mock_gpio, [SensorSlotConfig(name="Gone", kind="i2c_raw", i2c_address=0x50)])
        assert SensorReader(table, mock_gpio).read_all() == 0

    def test_slot_without_pin_skipped(self, mock_gpio: MockGPIO) -> None:
        config = SensorSlotConfig(name="A", kind="analog")
        table = SlotTable(mock_gpio, [config])
        assert SensorReader(table, mock_gpio).read_one(config) is None

    def test_analog_raw(self, mock_gpio: MockGPIO) -> None:
        config = SensorSlotConfig(name="Soil", kind="analog", pin=32)
        mock_gpio.analog_values[32] = 1234
        table = SlotTable(mock_gpio, [config])
        assert SensorReader(table, mock_gpio).read_one(config) == (1234.0, "1234")


@pytest.mark.unit
class TestBuildContext:
    def test_format(self, slot_table: SlotTable) -> None:
        slot_table.update_sensor("Temp", 21.0, "21.0")
        slot_table.set_actuator("Fan", True, 128)

        text = build_context(slot_table)

        assert text.startswith("Current sensor readings:\n- Temp: 21.0 C\n")
        assert "- Door: \n" in text
        assert "node-c/hum" not in text
        assert "Heater" not in text
        assert "- LED (digital): OFF\n" in text
        assert "- Fan (pwm): ON [pwm=128]\n" in text
        assert "- node-b/pump (mqtt): OFF\n" in text
        assert text.endswith('{"actions":[{"name":"LED","state":true},{"name":"Fan","pwm":128}]}\n')

    def test_empty_table(self, mock_gpio: MockGPIO) -> None:
        text = build_context(SlotTable(mock_gpio))
        assert "- No sensors configured" in text
        assert "- No actuators configured" in text

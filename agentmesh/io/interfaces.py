"""I/O layer — Abstract GPIO interface and concrete implementations.

Architecture:
  - :class:`GPIOInterface` is the abstract contract.  The slot table and the
    sensor reader talk to this interface only.
  - :class:`RaspberryPiGPIO` wraps the ``RPi.GPIO`` library for digital I/O
    and PWM, and the kernel ``/dev/i2c-N`` character device for the I2C bus.
  - :class:`MockGPIO` is a fully deterministic in-memory implementation for
    tests and for deployments without physical hardware.

GPIO design decisions:
  - Pin numbering uses BCM mode on Raspberry Pi.
  - All methods are synchronous because RPi.GPIO is not async-safe.  Callers
    on the event loop go through ``run_in_executor``.
  - PWM levels are 0–255 across the interface; the Pi backend converts them
    to a duty cycle percentage.
  - Analog readings are 12-bit (0–4095).  The Pi has no on-board ADC, so
    ``RaspberryPiGPIO.analog_read`` raises :class:`IOBackendError`.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from agentmesh.exceptions import IOBackendError
from agentmesh.io.models import FULL_SCALE

ADC_MAX = 4095
PWM_FREQUENCY_HZ = 1000.0

# First and last non-reserved 7-bit I2C addresses.
I2C_SCAN_FIRST = 0x03
I2C_SCAN_LAST = 0x77


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------


class GPIOInterface(ABC):
    """Abstract GPIO interface.

    All concrete implementations must fulfil this contract.  Hardware faults
    are reported as :class:`~agentmesh.exceptions.IOBackendError`.
    """

    name: str = "abstract"

    @abstractmethod
    def setup_output(self, pin: int) -> None:
        """Configure *pin* as a digital output."""

    @abstractmethod
    def setup_input(self, pin: int) -> None:
        """Configure *pin* as a digital input."""

    @abstractmethod
    def digital_read(self, pin: int) -> int:
        """Return the digital value of *pin* (0 or 1)."""

    @abstractmethod
    def digital_write(self, pin: int, value: int) -> None:
        """Set the digital output of *pin* to *value* (0 or 1)."""

    @abstractmethod
    def analog_read(self, pin: int) -> int:
        """Return a raw 12-bit ADC reading (0–4095) from *pin*."""

    @abstractmethod
    def pwm_write(self, pin: int, level: int) -> None:
        """Drive *pin* with PWM at *level* (0–255)."""

    @abstractmethod
    def i2c_read(self, address: int, count: int) -> bytes:
        """Read *count* bytes from the device at *address*."""

    @abstractmethod
    def i2c_write(self, address: int, data: bytes) -> None:
        """Write *data* to the device at *address*."""

    @abstractmethod
    def i2c_scan(self) -> list[int]:
        """Return the addresses of the devices that acknowledge on the bus."""

    @abstractmethod
    def cleanup(self) -> None:
        """Release GPIO resources."""


# ---------------------------------------------------------------------------
# Raspberry Pi implementation
# ---------------------------------------------------------------------------

_I2C_SLAVE = 0x0703  # ioctl request from <linux/i2c-dev.h>


class RaspberryPiGPIO(GPIOInterface):
    """GPIO implementation backed by ``RPi.GPIO`` and ``/dev/i2c-<bus>``.

    Raises :class:`~agentmesh.exceptions.IOBackendError` at instantiation if
    ``RPi.GPIO`` is not installed or we are not running on a Raspberry Pi.
    """

    name = "rpi"

    def __init__(self, i2c_bus: int = 1) -> None:
        try:
            import RPi.GPIO as GPIO  # type: ignore[import]

            self._gpio = GPIO
            GPIO.setmode(GPIO.BCM)
            GPIO.setwarnings(False)
        except (ImportError, RuntimeError) as exc:
            raise IOBackendError(
                backend=self.name,
                reason=(
                    "RPi.GPIO is not available.  "
                    "Install it with: pip install 'agentmesh[rpi]'  "
                    "(requires running on a Raspberry Pi with GPIO hardware)."
                ),
            ) from exc

        self._i2c_path = f"/dev/i2c-{i2c_bus}"
        self._pwm_channels: dict[int, Any] = {}

    def setup_output(self, pin: int) -> None:
        self._gpio.setup(pin, self._gpio.OUT)

    def setup_input(self, pin: int) -> None:
        self._gpio.setup(pin, self._gpio.IN, pull_up_down=self._gpio.PUD_OFF)

    def digital_read(self, pin: int) -> int:
        return int(self._gpio.input(pin))

    def digital_write(self, pin: int, value: int) -> None:
        self._gpio.output(pin, bool(value))

    def analog_read(self, pin: int) -> int:
        raise IOBackendError(self.name, "no on-board ADC; analog sensors are not supported")

    def pwm_write(self, pin: int, level: int) -> None:
        duty = max(0, min(FULL_SCALE, level)) * 100.0 / FULL_SCALE
        channel = self._pwm_channels.get(pin)
        if channel is None:
            self.setup_output(pin)
            channel = self._gpio.PWM(pin, PWM_FREQUENCY_HZ)
            channel.start(duty)
            self._pwm_channels[pin] = channel
        else:
            channel.ChangeDutyCycle(duty)

    def _open_i2c(self, address: int) -> int:
        import fcntl

        try:
            fd = os.open(self._i2c_path, os.O_RDWR)
        except OSError as exc:
            raise IOBackendError(self.name, f"cannot open {self._i2c_path}: {exc}") from exc
        try:
            fcntl.ioctl(fd, _I2C_SLAVE, address)
        except OSError as exc:
            os.close(fd)
            raise IOBackendError(self.name, f"cannot select I2C address {address:#04x}: {exc}") from exc
        return fd

    def i2c_read(self, address: int, count: int) -> bytes:
        fd = self._open_i2c(address)
        try:
            data = os.read(fd, count)
        except OSError as exc:
            raise IOBackendError(self.name, f"I2C read from {address:#04x} failed: {exc}") from exc
        finally:
            os.close(fd)
        if len(data) != count:
            raise IOBackendError(self.name, f"short I2C read from {address:#04x}")
        return data

    def i2c_write(self, address: int, data: bytes) -> None:
        fd = self._open_i2c(address)
        try:
            os.write(fd, data)
        except OSError as exc:
            raise IOBackendError(self.name, f"I2C write to {address:#04x} failed: {exc}") from exc
        finally:
            os.close(fd)

    def i2c_scan(self) -> list[int]:
        found: list[int] = []
        for address in range(I2C_SCAN_FIRST, I2C_SCAN_LAST + 1):
            try:
                self.i2c_read(address, 1)
            except IOBackendError:
                continue
            found.append(address)
        return found

    def cleanup(self) -> None:
        for channel in self._pwm_channels.values():
            channel.stop()
        self._pwm_channels.clear()
        self._gpio.cleanup()


# ---------------------------------------------------------------------------
# Mock implementation (tests + non-Pi environments)
# ---------------------------------------------------------------------------


@dataclass
class GPIOCall:
    """A recorded GPIO method call for test assertions."""

    method: str
    args: tuple[Any, ...]


class MockGPIO(GPIOInterface):
    """Fully deterministic in-memory GPIO for tests and non-Pi environments.

    All state is stored in plain dicts:
      - ``pin_values``    — {pin: int (0 or 1)}
      - ``analog_values`` — {pin: int (0–4095)}
      - ``pwm_levels``    — {pin: int (0–255)}
      - ``i2c_devices``   — {address: bytes returned by reads}
      - ``i2c_writes``    — list of (address, data)
      - ``call_log``      — list[GPIOCall]

    Usage::

        gpio = MockGPIO()
        gpio.analog_values[34] = 2048
        gpio.i2c_devices[0x48] = b"\\x01\\x02"
        gpio.failing_pins.add(5)        # next access to pin 5 raises

    A pin in ``failing_pins`` raises :class:`IOBackendError` on any access.
    """

    name = "mock"

    def __init__(self) -> None:
        self.outputs: set[int] = set()
        self.pin_values: dict[int, int] = {}
        self.analog_values: dict[int, int] = {}
        self.pwm_levels: dict[int, int] = {}
        self.i2c_devices: dict[int, bytes] = {}
        self.i2c_writes: list[tuple[int, bytes]] = []
        self.failing_pins: set[int] = set()
        self.call_log: list[GPIOCall] = []

    def _record(self, method: str, *args: Any) -> None:
        self.call_log.append(GPIOCall(method=method, args=args))

    def _check(self, pin: int) -> None:
        if pin in self.failing_pins:
            raise IOBackendError(self.name, f"simulated fault on pin {pin}")

    def calls(self, method: str) -> list[GPIOCall]:
        return [c for c in self.call_log if c.method == method]

    def setup_output(self, pin: int) -> None:
        self._record("setup_output", pin)
        self._check(pin)
        self.outputs.add(pin)
        self.pin_values.setdefault(pin, 0)

    def setup_input(self, pin: int) -> None:
        self._record("setup_input", pin)
        self._check(pin)

    def digital_read(self, pin: int) -> int:
        self._record("digital_read", pin)
        self._check(pin)
        return self.pin_values.get(pin, 0)

    def digital_write(self, pin: int, value: int) -> None:
        self._record("digital_write", pin, value)
        self._check(pin)
        self.pin_values[pin] = int(bool(value))

    def analog_read(self, pin: int) -> int:
        self._record("analog_read", pin)
        self._check(pin)
        return self.analog_values.get(pin, 0)

    def pwm_write(self, pin: int, level: int) -> None:
        self._record("pwm_write", pin, level)
        self._check(pin)
        self.pwm_levels[pin] = max(0, min(FULL_SCALE, level))

    def i2c_read(self, address: int, count: int) -> bytes:
        self._record("i2c_read", address, count)
        data = self.i2c_devices.get(address)
        if data is None:
            raise IOBackendError(self.name, f"no device at {address:#04x}")
        return data[:count].ljust(count, b"\x00")

    def i2c_write(self, address: int, data: bytes) -> None:
        self._record("i2c_write", address, data)
        if address not in self.i2c_devices:
            raise IOBackendError(self.name, f"no device at {address:#04x}")
        self.i2c_writes.append((address, bytes(data)))

    def i2c_scan(self) -> list[int]:
        self._record("i2c_scan")
        return sorted(a for a in self.i2c_devices if I2C_SCAN_FIRST <= a <= I2C_SCAN_LAST)

    def cleanup(self) -> None:
        self._record("cleanup")
        self.outputs.clear()
        self.pin_values.clear()
        self.pwm_levels.clear()


def build_backend(name: str) -> GPIOInterface:
    """Instantiate the backend named in ``io.backend``."""
    if name == "rpi":
        return RaspberryPiGPIO()
    if name == "mock":
        return MockGPIO()
    raise IOBackendError(name, "unknown backend")

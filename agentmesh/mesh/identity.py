"""Mesh layer — device identity and heartbeat facts."""

from __future__ import annotations

import socket
import time
import uuid
from functools import lru_cache

import psutil

_BOOT_MONOTONIC = time.monotonic()


@lru_cache(maxsize=1)
def hardware_device_id() -> str:
    """Stable ``node-<hex>`` id derived from the primary MAC address."""
    return f"node-{uuid.getnode() & 0xFFFFFFFF:08x}"


def resolve_device_id(override: str | None = None) -> str:
    """The configured id when set, otherwise the hardware-derived one."""
    if override and override.strip():
        return override.strip()
    return hardware_device_id()


def local_ip() -> str:
    """IP of the interface that routes to the outside world (no packet is sent)."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect(("192.0.2.1", 80))
        return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        sock.close()


def uptime_seconds() -> int:
    return int(time.monotonic() - _BOOT_MONOTONIC)


def heartbeat() -> dict[str, object]:
    return {
        "ip": local_ip(),
        "freeMemory": psutil.virtual_memory().available,
        "uptimeSeconds": uptime_seconds(),
    }

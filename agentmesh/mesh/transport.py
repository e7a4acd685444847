"""Mesh layer — publish/subscribe transport.

:class:`MeshTransport` is the small synchronous contract the bridge needs.
:class:`PahoTransport` implements it with ``paho-mqtt`` (v2 callback API)
and drives the network loop manually from the bridge's tick, so no paho
background thread is started.

All payloads are text; QoS 0 (at-most-once) throughout.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from agentmesh.exceptions import MeshDisconnectedError
from agentmesh.logging import get_logger

log = get_logger(__name__)

MessageHandler = Callable[[str, str], None]
"""Signature: def on_message(topic: str, payload: str) -> None"""


class MeshTransport(ABC):
    """Abstract MQTT-like transport."""

    on_message: MessageHandler | None = None

    @abstractmethod
    def connect(
        self,
        host: str,
        port: int,
        client_id: str,
        *,
        username: str | None = None,
        password: str | None = None,
        keepalive: int = 60,
    ) -> None:
        """Start connecting.  Raise MeshDisconnectedError when it cannot even start."""

    @abstractmethod
    def disconnect(self) -> None: ...

    @abstractmethod
    def subscribe(self, topic: str) -> bool: ...

    @abstractmethod
    def publish(self, topic: str, payload: str) -> bool:
        """Queue *payload* on *topic*.  False when the transport refused it."""

    @abstractmethod
    def loop(self, timeout: float) -> None:
        """Process network traffic for up to *timeout* seconds, dispatching inbound messages."""

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...


class PahoTransport(MeshTransport):
    """``paho-mqtt`` client driven by explicit ``loop()`` calls."""

    def __init__(self) -> None:
        self._client: Any = None
        self._host = ""

    def connect(
        self,
        host: str,
        port: int,
        client_id: str,
        *,
        username: str | None = None,
        password: str | None = None,
        keepalive: int = 60,
    ) -> None:
        import paho.mqtt.client as mqtt

        self.disconnect()
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        if username:
            client.username_pw_set(username, password)
        client.on_message = self._handle_message
        client.on_connect = self._handle_connect
        client.on_disconnect = self._handle_disconnect

        self._host = host
        try:
            client.connect(host, port, keepalive=keepalive)
        except (OSError, ValueError) as exc:
            raise MeshDisconnectedError(host, str(exc) or type(exc).__name__) from exc
        self._client = client

    def disconnect(self) -> None:
        if self._client is not None:
            try:
                self._client.disconnect()
            except OSError as exc:
                log.debug("mesh_disconnect_error", error=str(exc))
            self._client = None

    def subscribe(self, topic: str) -> bool:
        if self._client is None:
            return False
        rc, _mid = self._client.subscribe(topic, qos=0)
        return rc == 0

    def publish(self, topic: str, payload: str) -> bool:
        if self._client is None or not self._client.is_connected():
            return False
        info = self._client.publish(topic, payload, qos=0)
        return info.rc == 0

    def loop(self, timeout: float) -> None:
        if self._client is None:
            return
        rc = self._client.loop(timeout=timeout)
        if rc != 0 and not self._client.is_connected():
            raise MeshDisconnectedError(self._host, f"network loop returned rc={rc}")

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected()

    # ------------------------------------------------------------------
    # paho callbacks (v2 signatures)
    # ------------------------------------------------------------------

    def _handle_message(self, _client: Any, _userdata: Any, message: Any) -> None:
        if self.on_message is None:
            return
        payload = message.payload.decode("utf-8", errors="replace")
        self.on_message(message.topic, payload)

    def _handle_connect(
        self, _client: Any, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any
    ) -> None:
        if getattr(reason_code, "is_failure", False):
            log.warning("mesh_connect_refused", host=self._host, reason=str(reason_code))

    def _handle_disconnect(
        self, _client: Any, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any
    ) -> None:
        log.info("mesh_transport_disconnected", host=self._host, reason=str(reason_code))

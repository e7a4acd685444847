"""Unit tests — PahoTransport with a mocked paho client."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from agentmesh.exceptions import MeshDisconnectedError
from agentmesh.mesh.transport import PahoTransport


@pytest.fixture
def paho_client() -> MagicMock:
    client = MagicMock()
    client.is_connected.return_value = True
    client.subscribe.return_value = (0, 1)
    client.publish.return_value = SimpleNamespace(rc=0)
    client.loop.return_value = 0
    return client


@pytest.fixture
def transport(paho_client: MagicMock) -> PahoTransport:
    t = PahoTransport()
    with patch("paho.mqtt.client.Client", return_value=paho_client):
        t.connect("broker.local", 1883, "node-self", username="u", password="p", keepalive=30)
    return t


@pytest.mark.unit
class TestPahoTransport:
    def test_connect(self, transport: PahoTransport, paho_client: MagicMock) -> None:
        paho_client.username_pw_set.assert_called_once_with("u", "p")
        paho_client.connect.assert_called_once_with("broker.local", 1883, keepalive=30)
        assert transport.is_connected is True

    def test_connect_failure(self, paho_client: MagicMock) -> None:
        paho_client.connect.side_effect = ConnectionRefusedError("refused")
        t = PahoTransport()
        with patch("paho.mqtt.client.Client", return_value=paho_client):
            with pytest.raises(MeshDisconnectedError):
                t.connect("broker.local", 1883, "node-self")
        assert t.is_connected is False

    def test_publish_and_subscribe(self, transport: PahoTransport, paho_client: MagicMock) -> None:
        assert transport.subscribe("mesh/+/sensors/+") is True
        assert transport.publish("mesh/node-self/status", "{}") is True
        paho_client.publish.assert_called_once_with("mesh/node-self/status", "{}", qos=0)

    def test_publish_when_disconnected(self, transport: PahoTransport, paho_client: MagicMock) -> None:
        paho_client.is_connected.return_value = False
        assert transport.publish("t", "x") is False

    def test_loop_error_raises(self, transport: PahoTransport, paho_client: MagicMock) -> None:
        paho_client.loop.return_value = 7
        paho_client.is_connected.return_value = False
        with pytest.raises(MeshDisconnectedError):
            transport.loop(0.05)

    def test_message_dispatch(self, transport: PahoTransport) -> None:
        received: list[tuple[str, str]] = []
        transport.on_message = lambda topic, payload: received.append((topic, payload))

        transport._handle_message(None, None, SimpleNamespace(topic="mesh/a/sensors/t", payload=b"21.5"))

        assert received == [("mesh/a/sensors/t", "21.5")]

    def test_disconnect(self, transport: PahoTransport, paho_client: MagicMock) -> None:
        transport.disconnect()
        paho_client.disconnect.assert_called_once()
        assert transport.is_connected is False
        assert transport.subscribe("x") is False

"""Unit tests — HTTP routes against a real AgentContext with mock hardware.

Covers:
  - /health
  - /api/chat, /api/chat/reset
  - /api/io (GET/PUT), /api/actuator, /api/i2c/scan
  - /api/settings (masking, "****" passthrough, validation), /api/sysinfo
  - API token enforcement
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from agentmesh.agent.context import AgentContext
from agentmesh.api.dependencies import HEADER_API_TOKEN, get_config
from agentmesh.api.server import create_app
from agentmesh.config import Settings
from agentmesh.io.interfaces import MockGPIO


@pytest.fixture
def http() -> AsyncMock:
    return AsyncMock(spec=httpx.AsyncClient)


@pytest.fixture
def context(test_settings: Settings, mock_gpio: MockGPIO, fake_transport: Any, http: AsyncMock) -> AgentContext:
    return AgentContext(test_settings, gpio=mock_gpio, transport=fake_transport, http_client=http)


@pytest.fixture
def client(context: AgentContext) -> TestClient:
    return TestClient(create_app(context=context), raise_server_exceptions=False)


@pytest.mark.unit
class TestHealth:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["device_id"] == "node-self"
        assert body["mesh_state"] == "disconnected"
        assert body["provider"] == "openai"


@pytest.mark.unit
class TestChatRoutes:
    def test_chat_applies_actions(self, client: TestClient, context: AgentContext, http: AsyncMock) -> None:
        http.post.return_value = httpx.Response(
            200,
            json={"choices": [{"message": {"content": 'ok {"actions":[{"name":"Fan","pwm":64}]}'}}]},
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"),
        )

        resp = client.post("/api/chat", json={"message": "fan to a quarter"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["reply"].startswith("ok")
        assert body["actions"] == [{"name": "Fan", "status": "applied", "detail": ""}]
        assert context.slots.get_actuator("Fan").level == 64

    def test_empty_message_rejected(self, client: TestClient) -> None:
        assert client.post("/api/chat", json={"message": ""}).status_code == 422

    def test_reset(self, client: TestClient, context: AgentContext) -> None:
        resp = client.post("/api/chat/reset")
        assert resp.json() == {"ok": True}
        assert len(context.conversation.history) == 0


@pytest.mark.unit
class TestIORoutes:
    def test_get_io(self, client: TestClient) -> None:
        body = client.get("/api/io").json()
        assert [s["name"] for s in body["sensors"]][:2] == ["Temp", "Door"]
        assert body["actuators"][0] == {
            "name": "LED",
            "kind": "digital",
            "enabled": True,
            "pin": 2,
            "i2c_address": None,
            "on": False,
            "level": 0,
        }

    def test_set_actuator(self, client: TestClient, mock_gpio: MockGPIO) -> None:
        resp = client.post("/api/actuator", json={"name": "led", "state": True})
        assert resp.json() == {"ok": True}
        assert mock_gpio.pin_values[2] == 1

    def test_set_disabled_actuator(self, client: TestClient) -> None:
        resp = client.post("/api/actuator", json={"name": "Heater", "state": True})
        assert resp.status_code == 200
        assert resp.json() == {"ok": False}

    def test_unknown_actuator_404(self, client: TestClient) -> None:
        resp = client.post("/api/actuator", json={"name": "Toaster", "state": True})
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    def test_replace_slots_persists(self, client: TestClient, context: AgentContext) -> None:
        resp = client.put(
            "/api/io",
            json={"sensors": [{"name": "Soil", "kind": "analog", "pin": 32}], "actuators": []},
        )
        assert resp.status_code == 200
        assert [s["name"] for s in resp.json()["sensors"]] == ["Soil"]
        assert "Soil" in context.settings.source_path.read_text()

    def test_replace_slots_over_limit(self, client: TestClient) -> None:
        actuators = [{"name": f"A{i}", "kind": "mqtt"} for i in range(9)]
        resp = client.put("/api/io", json={"sensors": [], "actuators": actuators})
        assert resp.status_code == 422
        assert resp.json()["code"] == "config_error"

    def test_i2c_scan(self, client: TestClient) -> None:
        assert client.get("/api/i2c/scan").json() == {"addresses": ["0x20", "0x23"]}


@pytest.mark.unit
class TestSystemRoutes:
    def test_settings_masked(self, client: TestClient) -> None:
        body = client.get("/api/settings").json()
        assert body["llm"]["api_key"] == "****"
        assert body["llm"]["model"] == "gpt-4o-mini"
        assert body["telegram"]["token"] is None

    def test_settings_view_uses_config_dependency(self, context: AgentContext, test_settings: Settings) -> None:
        app = create_app(context=context)
        app.dependency_overrides[get_config] = lambda: test_settings.updated({"llm": {"model": "llama3"}})
        body = TestClient(app).get("/api/settings").json()
        assert body["llm"]["model"] == "llama3"
        assert body["llm"]["api_key"] == "****"

    def test_put_keeps_masked_secret(self, client: TestClient, context: AgentContext) -> None:
        resp = client.put("/api/settings", json={"llm": {"api_key": "****", "model": "gpt-4.1"}})
        assert resp.status_code == 200
        assert resp.json()["llm"]["model"] == "gpt-4.1"
        assert context.settings.llm.api_key.get_secret_value() == "sk-test"

    def test_put_replaces_secret(self, client: TestClient, context: AgentContext) -> None:
        client.put("/api/settings", json={"llm": {"api_key": "sk-new"}})
        assert context.settings.llm.api_key.get_secret_value() == "sk-new"

    def test_put_invalid(self, client: TestClient) -> None:
        resp = client.put("/api/settings", json={"agent": {"history_size": 1}})
        assert resp.status_code == 422

    def test_sysinfo(self, client: TestClient) -> None:
        body = client.get("/api/sysinfo").json()
        assert body["device_id"] == "node-self"
        assert body["io_backend"] == "mock"
        assert body["free_memory"] > 0


@pytest.mark.unit
class TestApiToken:
    @pytest.fixture
    def client(self, test_settings: Settings, mock_gpio: MockGPIO, fake_transport: Any) -> TestClient:
        settings = test_settings.updated({"server": {"api_token": "secret"}})
        context = AgentContext(settings, gpio=mock_gpio, transport=fake_transport, persist=False)
        return TestClient(create_app(context=context), raise_server_exceptions=False)

    def test_missing_token(self, client: TestClient) -> None:
        assert client.get("/api/io").status_code == 401

    def test_wrong_token(self, client: TestClient) -> None:
        assert client.get("/api/io", headers={HEADER_API_TOKEN: "nope"}).status_code == 401

    def test_valid_token(self, client: TestClient) -> None:
        assert client.get("/api/io", headers={HEADER_API_TOKEN: "secret"}).status_code == 200

    def test_health_is_open(self, client: TestClient) -> None:
        assert client.get("/health").status_code == 200

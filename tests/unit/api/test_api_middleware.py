"""Unit tests — API middleware (RequestIDMiddleware, AccessLogMiddleware, error handler)."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient

from agentmesh.api import middleware
from agentmesh.api.middleware import (
    AccessLogMiddleware,
    RequestIDMiddleware,
    build_error_handler,
    error_status,
)
from agentmesh.exceptions import (
    AgentMeshError,
    ConfigError,
    IOBackendError,
    MeshDisconnectedError,
    UnknownActuatorError,
)


def _make_test_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(AccessLogMiddleware)
    handler = build_error_handler()
    for exc_cls in [AgentMeshError, UnknownActuatorError, ConfigError, IOBackendError]:
        app.add_exception_handler(exc_cls, handler)

    @app.get("/ok")
    async def ok() -> dict:
        return {"status": "ok"}

    @app.get("/error/actuator")
    async def raise_actuator():
        raise UnknownActuatorError("Toaster")

    @app.get("/error/config")
    async def raise_config():
        raise ConfigError("bad slot table", context={"sensors": 9})

    @app.get("/error/backend")
    async def raise_backend():
        raise IOBackendError("rpi", "no /dev/i2c-1")

    @app.get("/error/internal")
    async def raise_internal():
        raise AgentMeshError("unexpected failure")

    return app


@pytest.fixture
def client() -> TestClient:
    return TestClient(_make_test_app(), raise_server_exceptions=False)


@pytest.mark.unit
class TestRequestIDMiddleware:
    def test_request_id_injected_in_response(self, client: TestClient) -> None:
        resp = client.get("/ok")
        assert resp.status_code == 200
        assert "X-Request-ID" in resp.headers

    def test_custom_request_id_echoed(self, client: TestClient) -> None:
        resp = client.get("/ok", headers={"X-Request-ID": "test-rid-123"})
        assert resp.headers["X-Request-ID"] == "test-rid-123"


@pytest.mark.unit
class TestErrorHandler:
    def test_unknown_actuator_returns_404(self, client: TestClient) -> None:
        resp = client.get("/error/actuator")
        assert resp.status_code == 404
        body = resp.json()
        assert body["code"] == "not_found"
        assert body["error"] == "Actuator 'Toaster' not found"
        assert body["detail"] == {"name": "Toaster"}

    def test_config_error_returns_422(self, client: TestClient) -> None:
        resp = client.get("/error/config")
        assert resp.status_code == 422
        assert resp.json()["code"] == "config_error"

    def test_backend_error_returns_500(self, client: TestClient) -> None:
        resp = client.get("/error/backend")
        assert resp.status_code == 500
        assert resp.json()["detail"]["backend"] == "rpi"

    def test_internal_error_returns_500(self, client: TestClient) -> None:
        resp = client.get("/error/internal", headers={"X-Request-ID": "rid-9"})
        assert resp.status_code == 500
        body = resp.json()
        assert body["code"] == "internal_error"
        assert body["detail"] is None
        assert body["request_id"] == "rid-9"


def _device_app(device_id: str) -> FastAPI:
    app = _make_test_app()
    app.state.context = SimpleNamespace(device_id=device_id)

    @app.get("/logctx")
    async def logctx() -> dict:
        return dict(structlog.contextvars.get_contextvars())

    @app.get("/error/mesh")
    async def raise_mesh():
        raise MeshDisconnectedError("broker.local", "refused")

    return app


@pytest.mark.unit
class TestDeviceTagging:
    def test_device_header_added(self) -> None:
        resp = TestClient(_device_app("node-7f3a")).get("/ok")
        assert resp.headers["X-Agentmesh-Device"] == "node-7f3a"

    def test_no_device_header_without_context(self, client: TestClient) -> None:
        assert "X-Agentmesh-Device" not in client.get("/ok").headers

    def test_request_id_bound_for_log_records(self) -> None:
        resp = TestClient(_device_app("node-7f3a")).get("/logctx", headers={"X-Request-ID": "rid-42"})
        assert resp.json()["request_id"] == "rid-42"

    def test_mesh_error_code(self) -> None:
        resp = TestClient(_device_app("node-7f3a"), raise_server_exceptions=False).get("/error/mesh")
        assert resp.status_code == 500
        assert resp.json()["code"] == "mesh_error"
        assert resp.headers["X-Agentmesh-Device"] == "node-7f3a"


@pytest.mark.unit
class TestAccessLog:
    @pytest.fixture
    def log(self, monkeypatch: pytest.MonkeyPatch) -> MagicMock:
        mock = MagicMock()
        monkeypatch.setattr(middleware, "log", mock)
        return mock

    def test_request_logged_at_info(self, client: TestClient, log: MagicMock) -> None:
        client.get("/ok", headers={"X-Request-ID": "rid-1"})
        event, fields = log.info.call_args.args[0], log.info.call_args.kwargs
        assert event == "api_request"
        assert fields["path"] == "/ok"
        assert fields["status"] == 200
        assert fields["request_id"] == "rid-1"

    def test_health_logged_at_debug(self, log: MagicMock) -> None:
        app = _make_test_app()

        @app.get("/health")
        async def health() -> dict:
            return {"status": "ok"}

        TestClient(app).get("/health")
        log.debug.assert_called_once()
        log.info.assert_not_called()

    def test_server_error_logged_as_warning(self, client: TestClient, log: MagicMock) -> None:
        client.get("/error/internal")
        assert log.warning.call_args.kwargs["status"] == 500
        assert log.error.call_args.args[0] == "api_request_failed"


@pytest.mark.unit
class TestErrorStatus:
    def test_subclass_before_base(self) -> None:
        assert error_status(UnknownActuatorError("Fan")) == (404, "not_found")

    def test_unmapped_error_is_internal(self) -> None:
        assert error_status(AgentMeshError("boom")) == (500, "internal_error")

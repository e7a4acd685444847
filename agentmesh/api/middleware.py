"""API layer — Request middleware.

Every response carries the request id (``X-Request-ID``, echoed when the
client sent one) and the answering device (``X-Agentmesh-Device``), so a
client talking to several boards of a mesh can tell which one replied.  The
request id is also bound to structlog's context variables for the duration of
the request, so ``llm_request_failed`` or ``actuator_set`` records emitted
while serving a chat line up with the ``api_request`` access record.

:func:`build_error_handler` turns :class:`AgentMeshError` into an
:class:`ErrorResponse`.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from agentmesh.api.schemas import ErrorResponse
from agentmesh.exceptions import (
    AgentMeshError,
    ConfigError,
    IOBackendError,
    LLMError,
    MeshError,
    UnknownActuatorError,
)
from agentmesh.logging import get_logger

log = get_logger(__name__)

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_DEVICE_ID = "X-Agentmesh-Device"

# Polled by supervisors every few seconds; kept out of the info log.
QUIET_PATHS = frozenset({"/health"})

# First match wins, so subclasses come before their bases.
_ERROR_CODES: tuple[tuple[type[AgentMeshError], int, str], ...] = (
    (UnknownActuatorError, 404, "not_found"),
    (ConfigError, 422, "config_error"),
    (IOBackendError, 500, "io_backend_error"),
    (MeshError, 500, "mesh_error"),
    (LLMError, 500, "llm_error"),
)


def _device_id(request: Request) -> str | None:
    context = getattr(request.app.state, "context", None)
    return getattr(context, "device_id", None)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag the request, its log records and its response with a request id."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(HEADER_REQUEST_ID) or uuid.uuid4().hex
        request.state.request_id = request_id

        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[HEADER_REQUEST_ID] = request_id
        device_id = _device_id(request)
        if device_id:
            response.headers[HEADER_DEVICE_ID] = device_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One ``api_request`` record per request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

        path = request.url.path
        if response.status_code >= 500:
            emit = log.warning
        elif path in QUIET_PATHS:
            emit = log.debug
        else:
            emit = log.info
        emit(
            "api_request",
            method=request.method,
            path=path,
            status=response.status_code,
            elapsed_ms=elapsed_ms,
            request_id=getattr(request.state, "request_id", None),
        )
        return response


def error_status(exc: AgentMeshError) -> tuple[int, str]:
    for exc_cls, status_code, code in _ERROR_CODES:
        if isinstance(exc, exc_cls):
            return status_code, code
    return 500, "internal_error"


def build_error_handler() -> Any:
    """Return a FastAPI exception handler for AgentMeshError subclasses."""

    async def handler(request: Request, exc: AgentMeshError) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None)
        status_code, code = error_status(exc)
        if status_code >= 500:
            log.error(
                "api_request_failed",
                path=request.url.path,
                code=code,
                error=exc.message,
                request_id=request_id,
            )

        body = ErrorResponse(
            error=exc.message,
            code=code,
            detail=exc.context or None,
            request_id=request_id,
        )
        return JSONResponse(status_code=status_code, content=body.model_dump())

    return handler

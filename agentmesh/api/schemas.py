"""API layer — request and response models."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, Field

from agentmesh.agent.actions import ActionResult
from agentmesh.io.models import (
    FULL_SCALE,
    ActuatorSlotConfig,
    ActuatorState,
    SensorSlotConfig,
    SensorSnapshot,
)


class ErrorResponse(BaseModel):
    error: str
    code: str
    detail: Any | None = None
    request_id: str | None = None


class HealthResponse(BaseModel):
    status: str
    version: str
    device_id: str
    mesh_state: str | None = None
    provider: str
    uptime_seconds: float


class ChatBody(BaseModel):
    message: str = Field(min_length=1, max_length=4096)


class ChatResponse(BaseModel):
    reply: str
    actions: list[ActionResult] = Field(default_factory=list)


class OkResponse(BaseModel):
    ok: bool


class IOResponse(BaseModel):
    sensors: list[SensorSnapshot]
    actuators: list[ActuatorState]


class SlotsBody(BaseModel):
    sensors: list[SensorSlotConfig] = Field(default_factory=list)
    actuators: list[ActuatorSlotConfig] = Field(default_factory=list)


class ActuatorBody(BaseModel):
    name: str = Field(min_length=1)
    state: bool
    pwm: Annotated[int, Field(ge=0, le=FULL_SCALE)] | None = None


class I2CScanResponse(BaseModel):
    addresses: list[str]


class SysInfoResponse(BaseModel):
    version: str
    device_id: str
    ip: str
    free_memory: int
    uptime_seconds: int
    mesh_state: str | None = None
    io_backend: str

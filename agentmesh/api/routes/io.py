"""GET/PUT /api/io, POST /api/actuator, GET /api/i2c/scan"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter

from agentmesh.api.dependencies import AuthDep, ContextDep
from agentmesh.api.schemas import (
    ActuatorBody,
    I2CScanResponse,
    IOResponse,
    OkResponse,
    SlotsBody,
)

router = APIRouter(prefix="/api", tags=["io"])


@router.get("/io", response_model=IOResponse, summary="Current sensor and actuator state")
async def get_io(_auth: AuthDep, context: ContextDep) -> IOResponse:
    return IOResponse(sensors=context.slots.sensors(), actuators=context.slots.actuators())


@router.put("/io", response_model=IOResponse, summary="Replace the slot configuration")
async def put_io(body: SlotsBody, _auth: AuthDep, context: ContextDep) -> IOResponse:
    context.replace_slots(body.sensors, body.actuators)
    return IOResponse(sensors=context.slots.sensors(), actuators=context.slots.actuators())


@router.post("/actuator", response_model=OkResponse, summary="Set one actuator")
async def set_actuator(body: ActuatorBody, _auth: AuthDep, context: ContextDep) -> OkResponse:
    actuator = context.slots.get_actuator(body.name)
    loop = asyncio.get_running_loop()
    ok = await loop.run_in_executor(
        None, context.slots.set_actuator, actuator.name, body.state, body.pwm
    )
    return OkResponse(ok=ok)


@router.get("/i2c/scan", response_model=I2CScanResponse, summary="Scan the I2C bus")
async def i2c_scan(_auth: AuthDep, context: ContextDep) -> I2CScanResponse:
    loop = asyncio.get_running_loop()
    found = await loop.run_in_executor(None, context.gpio.i2c_scan)
    return I2CScanResponse(addresses=[f"0x{a:02X}" for a in found])

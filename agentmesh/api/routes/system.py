"""GET/PUT /api/settings, GET /api/sysinfo"""

from __future__ import annotations

from typing import Any

import psutil
from fastapi import APIRouter, Body

from agentmesh import __version__
from agentmesh.api.dependencies import AuthDep, ConfigDep, ContextDep
from agentmesh.api.schemas import SysInfoResponse
from agentmesh.config import Settings, to_builtins
from agentmesh.mesh.identity import local_ip, uptime_seconds

router = APIRouter(prefix="/api", tags=["system"])

MASK = "****"

# (section, field) pairs never returned in clear text.
SECRET_FIELDS = (
    ("llm", "api_key"),
    ("mesh", "password"),
    ("telegram", "token"),
    ("server", "api_token"),
)


def masked_settings(settings: Settings) -> dict[str, Any]:
    data = to_builtins(settings.model_dump())
    for section, field in SECRET_FIELDS:
        if data.get(section, {}).get(field):
            data[section][field] = MASK
    return data


def drop_masked(changes: dict[str, Any]) -> dict[str, Any]:
    """Remove secret fields the client echoed back as ``****``."""
    for section, field in SECRET_FIELDS:
        values = changes.get(section)
        if isinstance(values, dict) and values.get(field) == MASK:
            del values[field]
    return changes


@router.get("/settings", summary="Current settings (secrets masked)")
async def get_settings_view(_auth: AuthDep, settings: ConfigDep) -> dict[str, Any]:
    return masked_settings(settings)


@router.put("/settings", summary="Update and persist settings")
async def put_settings(
    _auth: AuthDep,
    context: ContextDep,
    changes: dict[str, Any] = Body(...),
) -> dict[str, Any]:
    updated = context.update_settings(drop_masked(changes))
    return masked_settings(updated)


@router.get("/sysinfo", response_model=SysInfoResponse, summary="Device facts")
async def sysinfo(_auth: AuthDep, context: ContextDep) -> SysInfoResponse:
    mesh_state = context.mesh_state
    return SysInfoResponse(
        version=__version__,
        device_id=context.device_id,
        ip=local_ip(),
        free_memory=psutil.virtual_memory().available,
        uptime_seconds=uptime_seconds(),
        mesh_state=mesh_state.value if mesh_state is not None else None,
        io_backend=context.gpio.name,
    )

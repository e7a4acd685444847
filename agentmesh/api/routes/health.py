"""GET /health — liveness plus device and mesh status."""

from __future__ import annotations

from fastapi import APIRouter

from agentmesh import __version__
from agentmesh.api.dependencies import ContextDep
from agentmesh.api.schemas import HealthResponse
from agentmesh.mesh.identity import uptime_seconds

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, summary="Agent health check")
async def health(context: ContextDep) -> HealthResponse:
    mesh_state = context.mesh_state
    return HealthResponse(
        status="ok",
        version=__version__,
        device_id=context.device_id,
        mesh_state=mesh_state.value if mesh_state is not None else None,
        provider=context.settings.llm.provider,
        uptime_seconds=uptime_seconds(),
    )

"""API layer — FastAPI dependency injection.

The ``AgentContext`` is created once by ``create_app()`` and injected via
FastAPI's dependency system.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from agentmesh.agent.context import AgentContext
from agentmesh.config import Settings

HEADER_API_TOKEN = "X-Agentmesh-Token"


def get_context(request: Request) -> AgentContext:
    return request.app.state.context  # type: ignore[no-any-return]


def get_config(request: Request) -> Settings:
    return request.app.state.context.settings  # type: ignore[no-any-return]


async def verify_api_token(
    request: Request,
    x_agentmesh_token: Annotated[str | None, Header(alias=HEADER_API_TOKEN)] = None,
) -> None:
    """Verify the API token if one is configured."""
    settings: Settings = request.app.state.context.settings
    expected = settings.server.api_token

    if not expected:
        return

    if x_agentmesh_token != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API token.",
        )


# Shorthand type aliases for route signatures.
ContextDep = Annotated[AgentContext, Depends(get_context)]
ConfigDep = Annotated[Settings, Depends(get_config)]
AuthDep = Annotated[None, Depends(verify_api_token)]

"""POST /api/chat, POST /api/chat/reset"""

from __future__ import annotations

from fastapi import APIRouter

from agentmesh.api.dependencies import AuthDep, ContextDep
from agentmesh.api.schemas import ChatBody, ChatResponse, OkResponse

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post("", response_model=ChatResponse, summary="Send a message to the agent")
async def chat(body: ChatBody, _auth: AuthDep, context: ContextDep) -> ChatResponse:
    outcome = await context.handle_message(body.message)
    return ChatResponse(reply=outcome.reply, actions=outcome.actions)


@router.post("/reset", response_model=OkResponse, summary="Clear the conversation history")
async def reset(_auth: AuthDep, context: ContextDep) -> OkResponse:
    context.conversation.reset()
    return OkResponse(ok=True)

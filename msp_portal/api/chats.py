from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from msp_portal.api.deps import get_workspace
from msp_portal.api.utils import chat_view, list_response, require_text
from msp_portal.schemas.base import ChatStatus
from msp_portal.schemas.chat import ChatView, MessageCreate
from msp_portal.services.workspace import Workspace

router = APIRouter(prefix="/chats", tags=["chats"])


@router.get("", response_model=dict)
async def list_chats(
    status: ChatStatus | None = None,
    workspace: Workspace = Depends(get_workspace),
) -> dict:
    chats = await workspace.chats.list_chats(status=status)
    return list_response(chats)


@router.get("/current", response_model=ChatView)
async def current_chat(workspace: Workspace = Depends(get_workspace)) -> ChatView:
    return chat_view(workspace.chats)


@router.delete("/current", response_model=ChatView)
async def leave_chat(workspace: Workspace = Depends(get_workspace)) -> ChatView:
    workspace.chats.deselect()
    return chat_view(workspace.chats)


@router.post("/current/messages", response_model=ChatView)
async def send_message(
    payload: MessageCreate,
    workspace: Workspace = Depends(get_workspace),
) -> ChatView:
    text = require_text(payload.text)
    messages = await workspace.chats.send_message(text)
    if messages is None:
        raise HTTPException(status_code=400, detail="No chat selected")
    return chat_view(workspace.chats)


@router.post("/{chat_id}/select", response_model=ChatView)
async def select_chat(
    chat_id: str,
    workspace: Workspace = Depends(get_workspace),
) -> ChatView:
    manager = workspace.chats
    if not any(c.id == chat_id for c in manager.chats):
        await manager.list_chats()
    if not any(c.id == chat_id for c in manager.chats):
        raise HTTPException(status_code=404, detail="Chat not found")
    await manager.select_chat(chat_id)
    return chat_view(manager)

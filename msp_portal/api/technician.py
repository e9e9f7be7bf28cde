from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends

from msp_portal.api.deps import require_role
from msp_portal.api.utils import chat_view, list_response
from msp_portal.schemas.chat import ChatView
from msp_portal.services.workspace import Workspace

router = APIRouter(prefix="/technician", tags=["technician"])

staff = require_role("technician", "admin")


@router.get("/clients", response_model=dict)
async def list_clients(workspace: Workspace = Depends(staff)) -> dict:
    return list_response(await workspace.gateway.get_clients())


@router.get("/technicians", response_model=dict)
async def list_technicians(workspace: Workspace = Depends(staff)) -> dict:
    return list_response(await workspace.gateway.get_technicians())


@router.get("/chats", response_model=dict)
async def list_chats(
    filter: Literal["all", "active", "waiting", "closed"] = "all",
    workspace: Workspace = Depends(staff),
) -> dict:
    status = None if filter == "all" else filter
    return list_response(await workspace.chats.list_chats(status=status))


@router.post("/clients/{client_id}/switch", response_model=ChatView)
async def switch_to_client(
    client_id: str,
    workspace: Workspace = Depends(staff),
) -> ChatView:
    chat = await workspace.chats.switch_to_client(client_id)
    return chat_view(workspace.chats, chat)

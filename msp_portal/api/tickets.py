from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from msp_portal.api.deps import get_workspace, require_role
from msp_portal.api.utils import require_text
from msp_portal.schemas.chat import ChatView, MessageCreate
from msp_portal.schemas.ticket import (
    ItemRequestCreate,
    SupportTicketCreate,
    Ticket,
    TicketBoardOut,
    TicketStatusUpdate,
)
from msp_portal.services.workspace import Workspace

router = APIRouter(prefix="/tickets", tags=["tickets"])


async def _visible_ticket(workspace: Workspace, ticket_id: str) -> Ticket:
    ticket = workspace.board.find(ticket_id)
    if ticket is None:
        await workspace.board.reload()
        ticket = workspace.board.find(ticket_id)
    if ticket is None:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


@router.get("", response_model=TicketBoardOut)
async def list_tickets(workspace: Workspace = Depends(get_workspace)) -> TicketBoardOut:
    return await workspace.board.reload()


@router.post("/support", response_model=Ticket, status_code=201)
async def submit_support_ticket(
    payload: SupportTicketCreate,
    workspace: Workspace = Depends(require_role("client")),
) -> Ticket:
    ticket = await workspace.board.submit_support_ticket(payload)
    await workspace.board.reload()
    return ticket


@router.post("/requests", response_model=Ticket, status_code=201)
async def submit_item_request(
    payload: ItemRequestCreate,
    workspace: Workspace = Depends(require_role("client")),
) -> Ticket:
    ticket = await workspace.board.submit_item_request(payload)
    await workspace.board.reload()
    return ticket


@router.patch("/{ticket_id}/status", response_model=Ticket)
async def update_ticket_status(
    ticket_id: str,
    payload: TicketStatusUpdate,
    workspace: Workspace = Depends(require_role("technician", "admin")),
) -> Ticket:
    return await workspace.board.update_status(ticket_id, payload.status)


@router.get("/{ticket_id}/messages", response_model=ChatView)
async def ticket_messages(
    ticket_id: str,
    workspace: Workspace = Depends(get_workspace),
) -> ChatView:
    await _visible_ticket(workspace, ticket_id)
    chat, messages = await workspace.board.conversation(ticket_id)
    return ChatView(chat=chat, messages=messages)


@router.post("/{ticket_id}/messages", response_model=ChatView)
async def post_ticket_message(
    ticket_id: str,
    payload: MessageCreate,
    workspace: Workspace = Depends(get_workspace),
) -> ChatView:
    text = require_text(payload.text)
    ticket = await _visible_ticket(workspace, ticket_id)
    chat, messages = await workspace.board.post_to_ticket(ticket, text)
    return ChatView(chat=chat, messages=messages)

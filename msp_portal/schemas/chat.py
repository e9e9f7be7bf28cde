from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from msp_portal.schemas.base import ChatStatus, ViewModel
from msp_portal.schemas.ticket import TicketClient


class ChatTicket(ViewModel):
    id: str
    title: str | None = None
    client_id: str | None = None
    technician_id: str | None = None
    client: TicketClient | None = None


class Chat(ViewModel):
    id: str
    ticket_id: str | None = None
    subject: str | None = None
    status: ChatStatus = "active"
    last_activity: datetime | None = None
    created_at: datetime | None = None
    ticket: ChatTicket | None = None


class MessageSender(ViewModel):
    full_name: str | None = None
    avatar_url: str | None = None


class Message(ViewModel):
    id: str
    chat_id: str
    sender_id: str
    content: str
    read: bool = False
    created_at: datetime | None = None
    sender: MessageSender | None = None


class ChatView(ViewModel):
    chat: Chat | None = None
    messages: list[Message]


class MessageCreate(BaseModel):
    text: str = Field(max_length=10000)

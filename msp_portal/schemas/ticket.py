from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from msp_portal.schemas.base import (
    TicketPriority,
    TicketStatus,
    TicketType,
    ViewModel,
)
from msp_portal.schemas.directory import Company, UserSummary


class TicketClient(ViewModel):
    id: str
    user: UserSummary | None = None
    company: Company | None = None


class TicketTechnician(ViewModel):
    id: str
    user: UserSummary | None = None


class Ticket(ViewModel):
    id: str
    client_id: str
    technician_id: str | None = None
    title: str
    description: str | None = None
    type: TicketType = "support"
    status: TicketStatus = "pending"
    priority: TicketPriority | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    client: TicketClient | None = None
    technician: TicketTechnician | None = None


class StatusCount(ViewModel):
    status: TicketStatus
    count: int


class TicketBoardOut(ViewModel):
    tickets: list[Ticket]
    status_counts: list[StatusCount]
    active_ticket_id: str | None = None


class SupportTicketCreate(BaseModel):
    title: str = Field(min_length=2)
    description: str = Field(min_length=10)
    priority: TicketPriority


class ItemRequestCreate(ViewModel):
    item_type: Literal["hardware", "software", "peripheral", "accessory", "other"]
    item_name: str = Field(min_length=2)
    specifications: str = Field(min_length=10)
    justification: str = Field(min_length=20)
    urgency: Literal["low", "normal", "high", "urgent"]


class TicketStatusUpdate(BaseModel):
    status: TicketStatus

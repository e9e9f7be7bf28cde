from __future__ import annotations

import structlog

from msp_portal.schemas.base import TICKET_STATUSES
from msp_portal.schemas.chat import Chat, Message
from msp_portal.schemas.ticket import (
    ItemRequestCreate,
    StatusCount,
    SupportTicketCreate,
    Ticket,
    TicketBoardOut,
)
from msp_portal.services.gateway import PortalGateway
from msp_portal.services.portal_session import PortalSession

logger = structlog.get_logger(__name__)

REQUEST_TYPE_MAP = {
    "hardware": "hardware",
    "software": "software",
    "peripheral": "hardware",
    "accessory": "hardware",
    "other": "hardware",
}

URGENCY_PRIORITY_MAP = {
    "low": "low",
    "normal": "medium",
    "high": "high",
    "urgent": "critical",
}


class TicketBoardError(Exception):
    pass


def status_counts(tickets: list[Ticket]) -> list[StatusCount]:
    return [
        StatusCount(status=status, count=sum(1 for t in tickets if t.status == status))
        for status in TICKET_STATUSES
    ]


def pick_active_ticket(tickets: list[Ticket]) -> Ticket | None:
    for ticket in tickets:
        if ticket.status != "complete":
            return ticket
    return tickets[0] if tickets else None


class TicketBoard:
    """Ticket list of one user, replaced wholesale on every reload.

    The status counts are always derived from the same snapshot as the list.
    """

    def __init__(self, gateway: PortalGateway, session: PortalSession) -> None:
        self.gateway = gateway
        self.session = session
        self.tickets: list[Ticket] = []
        self.counts: list[StatusCount] = status_counts([])
        self.active_ticket: Ticket | None = None

    async def reload(self) -> TicketBoardOut:
        if self.session.has_role("client"):
            if self.session.client_id:
                tickets = await self.gateway.get_tickets(self.session.client_id)
            else:
                tickets = []
        elif self.session.has_role("technician", "admin"):
            tickets = await self.gateway.get_tickets()
        else:
            tickets = []
        self.tickets = tickets
        self.counts = status_counts(tickets)
        self.active_ticket = pick_active_ticket(tickets)
        return self.snapshot()

    def snapshot(self) -> TicketBoardOut:
        return TicketBoardOut(
            tickets=self.tickets,
            status_counts=self.counts,
            active_ticket_id=self.active_ticket.id if self.active_ticket else None,
        )

    def _require_client(self) -> str:
        if not self.session.client_id:
            raise TicketBoardError("Only clients with a client record can submit tickets")
        return self.session.client_id

    async def submit_support_ticket(self, payload: SupportTicketCreate) -> Ticket:
        client_id = self._require_client()
        ticket = await self.gateway.create_ticket(
            client_id=client_id,
            title=payload.title,
            description=payload.description,
            ticket_type="support",
            status="pending",
            priority=payload.priority,
        )
        logger.info("ticket_submitted", ticket_id=ticket.id, client_id=client_id)
        return ticket

    async def submit_item_request(self, payload: ItemRequestCreate) -> Ticket:
        client_id = self._require_client()
        description = (
            f"{payload.specifications}\n\nJustification: {payload.justification}"
        )
        ticket = await self.gateway.create_ticket(
            client_id=client_id,
            title=payload.item_name,
            description=description,
            ticket_type=REQUEST_TYPE_MAP[payload.item_type],
            status="pending",
            priority=URGENCY_PRIORITY_MAP[payload.urgency],
        )
        logger.info(
            "request_submitted",
            ticket_id=ticket.id,
            client_id=client_id,
            item_type=payload.item_type,
        )
        return ticket

    async def update_status(self, ticket_id: str, status: str) -> Ticket:
        ticket = await self.gateway.update_ticket_status(ticket_id, status)
        logger.info("ticket_status_updated", ticket_id=ticket_id, status=status)
        return ticket

    def find(self, ticket_id: str) -> Ticket | None:
        return next((t for t in self.tickets if t.id == ticket_id), None)

    async def conversation(self, ticket_id: str) -> tuple[Chat | None, list[Message]]:
        chat = await self.gateway.get_chat_for_ticket(ticket_id)
        if chat is None:
            return None, []
        return chat, await self.gateway.get_messages(chat.id)

    async def post_to_ticket(
        self, ticket: Ticket, text: str
    ) -> tuple[Chat | None, list[Message]] | None:
        """Send on the ticket's chat, opening the chat first if it has none."""
        if not text.strip():
            return None
        chat = await self.gateway.get_chat_for_ticket(ticket.id)
        if chat is None:
            chat = await self.gateway.create_chat(ticket.id, subject=ticket.title)
        await self.gateway.send_message(chat.id, self.session.user_id, text)
        return chat, await self.gateway.get_messages(chat.id)

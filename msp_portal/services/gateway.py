from __future__ import annotations

from typing import Any

from msp_portal.schemas.chat import Chat, ChatTicket, Message, MessageSender
from msp_portal.schemas.directory import (
    Client,
    Company,
    Location,
    Technician,
    UserProfile,
    UserSummary,
)
from msp_portal.schemas.notification import Notification
from msp_portal.schemas.ticket import Ticket, TicketClient, TicketTechnician
from msp_portal.services.rest_client import (
    GatewayError,
    RestClient,
    eq,
    in_,
    neq,
)
from msp_portal.utils.time import parse_timestamp, to_wire, utc_now

USER_COLUMNS = "id, email, full_name, avatar_url"

CLIENT_SELECT = f"""
    *,
    user:users({USER_COLUMNS}),
    company:companies(id, name, website, phone),
    location:locations(id, name, address, city, state, zip, phone)
"""

TECHNICIAN_SELECT = f"*, user:users({USER_COLUMNS})"

TICKET_SELECT = f"""
    *,
    client:clients(
        id,
        user:users({USER_COLUMNS}),
        company:companies(id, name)
    ),
    technician:technicians(
        id,
        user:users({USER_COLUMNS})
    )
"""

CHAT_SELECT = f"""
    *,
    ticket:tickets(
        id,
        title,
        client_id,
        technician_id,
        client:clients(
            id,
            user:users({USER_COLUMNS}),
            company:companies(id, name)
        )
    )
"""

MESSAGE_SELECT = "*, sender:users(id, full_name, avatar_url)"


def _first(value: Any) -> dict[str, Any] | None:
    # Embedded relations come back as an object or a one-element list.
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, dict) else None


def _user_summary(row: Any) -> UserSummary | None:
    data = _first(row)
    if not data:
        return None
    return UserSummary(
        full_name=data.get("full_name") or "",
        email=data.get("email"),
        avatar_url=data.get("avatar_url"),
    )


def _company(row: Any) -> Company | None:
    data = _first(row)
    if not data or not data.get("id"):
        return None
    return Company(
        id=str(data["id"]),
        name=data.get("name") or "",
        website=data.get("website"),
        phone=data.get("phone"),
        address=data.get("address"),
        email=data.get("email"),
    )


def _location(row: Any, company_id: str | None = None) -> Location | None:
    data = _first(row)
    if not data or not data.get("id"):
        return None
    return Location(
        id=str(data["id"]),
        company_id=str(data.get("company_id") or company_id or ""),
        name=data.get("name") or "",
        address=data.get("address"),
        city=data.get("city"),
        state=data.get("state"),
        zip=data.get("zip"),
        phone=data.get("phone"),
    )


def _optional_id(value: Any) -> str | None:
    return str(value) if value is not None else None


def _profile(row: dict[str, Any]) -> UserProfile:
    return UserProfile(
        id=str(row["id"]),
        email=row.get("email"),
        full_name=row.get("full_name") or "",
        avatar_url=row.get("avatar_url"),
        role=row.get("role") or "client",
        company_id=_optional_id(row.get("company_id")),
        company=_company(row.get("company")),
    )


def _client(row: dict[str, Any]) -> Client:
    company_id = _optional_id(row.get("company_id"))
    return Client(
        id=str(row["id"]),
        user_id=_optional_id(row.get("user_id")),
        company_id=company_id,
        location_id=_optional_id(row.get("location_id")),
        job_title=row.get("job_title"),
        phone=row.get("phone"),
        user=_user_summary(row.get("user")),
        company=_company(row.get("company")),
        location=_location(row.get("location"), company_id),
    )


def _technician(row: dict[str, Any]) -> Technician:
    return Technician(
        id=str(row["id"]),
        user_id=_optional_id(row.get("user_id")),
        specialization=row.get("specialization"),
        phone=row.get("phone"),
        user=_user_summary(row.get("user")),
    )


def _ticket_client(row: Any) -> TicketClient | None:
    data = _first(row)
    if not data or not data.get("id"):
        return None
    return TicketClient(
        id=str(data["id"]),
        user=_user_summary(data.get("user")),
        company=_company(data.get("company")),
    )


def _ticket(row: dict[str, Any]) -> Ticket:
    technician = _first(row.get("technician"))
    return Ticket(
        id=str(row["id"]),
        client_id=str(row.get("client_id") or ""),
        technician_id=_optional_id(row.get("technician_id")),
        title=row.get("title") or "",
        description=row.get("description"),
        type=row.get("type") or "support",
        status=row.get("status") or "pending",
        priority=row.get("priority"),
        created_at=parse_timestamp(row.get("created_at")),
        updated_at=parse_timestamp(row.get("updated_at")),
        client=_ticket_client(row.get("client")),
        technician=(
            TicketTechnician(
                id=str(technician["id"]),
                user=_user_summary(technician.get("user")),
            )
            if technician and technician.get("id")
            else None
        ),
    )


def _chat(row: dict[str, Any]) -> Chat:
    ticket = _first(row.get("ticket"))
    return Chat(
        id=str(row["id"]),
        ticket_id=_optional_id(row.get("ticket_id")),
        subject=row.get("subject"),
        status=row.get("status") or "active",
        last_activity=parse_timestamp(row.get("last_activity")),
        created_at=parse_timestamp(row.get("created_at")),
        ticket=(
            ChatTicket(
                id=str(ticket["id"]),
                title=ticket.get("title"),
                client_id=_optional_id(ticket.get("client_id")),
                technician_id=_optional_id(ticket.get("technician_id")),
                client=_ticket_client(ticket.get("client")),
            )
            if ticket and ticket.get("id")
            else None
        ),
    )


def _message(row: dict[str, Any]) -> Message:
    sender = _first(row.get("sender"))
    return Message(
        id=str(row["id"]),
        chat_id=str(row.get("chat_id") or ""),
        sender_id=str(row.get("user_id") or ""),
        content=row.get("content") or "",
        read=bool(row.get("read")),
        created_at=parse_timestamp(row.get("created_at")),
        sender=(
            MessageSender(
                full_name=sender.get("full_name"),
                avatar_url=sender.get("avatar_url"),
            )
            if sender
            else None
        ),
    )


def _notification(row: dict[str, Any]) -> Notification:
    return Notification(
        id=str(row["id"]),
        user_id=str(row.get("user_id") or ""),
        title=row.get("title") or "",
        message=row.get("message") or "",
        read=bool(row.get("read")),
        created_at=parse_timestamp(row.get("created_at")),
        updated_at=parse_timestamp(row.get("updated_at")),
    )


def _single(rows: list[dict[str, Any]], table: str) -> dict[str, Any]:
    if not rows:
        raise GatewayError(f"{table}: write returned no row")
    return rows[0]


class PortalGateway:
    """Query and mutation wrappers over the remote tables.

    Reads always return lists ordered by an explicit ``order``; every remote
    failure surfaces as :class:`GatewayError`. Nothing here retries or caches.
    """

    def __init__(self, rest: RestClient) -> None:
        self.rest = rest

    # Companies and locations

    async def get_companies(self) -> list[Company]:
        rows = await self.rest.select("companies", order=[("name", True)])
        return [company for company in map(_company, rows) if company]

    async def create_company(
        self,
        name: str,
        address: str | None = None,
        phone: str | None = None,
        email: str | None = None,
    ) -> Company:
        rows = await self.rest.insert(
            "companies",
            {"name": name, "address": address, "phone": phone, "email": email},
        )
        company = _company(_single(rows, "companies"))
        if company is None:
            raise GatewayError("companies: write returned no id")
        return company

    async def get_company_locations(self, company_id: str) -> list[Location]:
        rows = await self.rest.select(
            "locations",
            filters=[eq("company_id", company_id)],
            order=[("name", True)],
        )
        return [location for location in map(_location, rows) if location]

    # Users, clients, technicians

    async def get_users(self) -> list[UserProfile]:
        rows = await self.rest.select(
            "users", "*, company:companies(*)", order=[("full_name", True)]
        )
        return [_profile(row) for row in rows]

    async def get_user_profile(self, user_id: str) -> UserProfile | None:
        rows = await self.rest.select(
            "users", filters=[eq("id", user_id)], limit=1
        )
        return _profile(rows[0]) if rows else None

    async def get_clients(self) -> list[Client]:
        rows = await self.rest.select("clients", CLIENT_SELECT)
        return [_client(row) for row in rows]

    async def get_client_for_user(self, user_id: str) -> Client | None:
        rows = await self.rest.select(
            "clients", CLIENT_SELECT, filters=[eq("user_id", user_id)], limit=1
        )
        return _client(rows[0]) if rows else None

    async def get_technicians(self) -> list[Technician]:
        rows = await self.rest.select("technicians", TECHNICIAN_SELECT)
        return [_technician(row) for row in rows]

    async def get_technician_for_user(self, user_id: str) -> Technician | None:
        rows = await self.rest.select(
            "technicians", TECHNICIAN_SELECT, filters=[eq("user_id", user_id)], limit=1
        )
        return _technician(rows[0]) if rows else None

    async def create_user(
        self,
        email: str,
        password: str,
        name: str,
        role: str,
        company_id: str | None = None,
    ) -> dict[str, Any]:
        data = await self.rest.invoke(
            "create-user",
            {
                "email": email,
                "password": password,
                "userData": {"name": name, "role": role, "company_id": company_id or None},
            },
        )
        if data.get("success") is not True:
            raise GatewayError(f"create-user failed: {data}")
        user = data.get("user")
        return user if isinstance(user, dict) else {}

    # Tickets

    async def get_tickets(self, client_id: str | None = None) -> list[Ticket]:
        filters = [eq("client_id", client_id)] if client_id else []
        rows = await self.rest.select(
            "tickets",
            TICKET_SELECT,
            filters=filters,
            order=[("created_at", False)],
        )
        return [_ticket(row) for row in rows]

    async def get_ticket_ids(
        self,
        client_id: str | None = None,
        technician_id: str | None = None,
    ) -> list[str]:
        filters = []
        if client_id:
            filters.append(eq("client_id", client_id))
        if technician_id:
            filters.append(eq("technician_id", technician_id))
        rows = await self.rest.select("tickets", "id", filters=filters)
        return [str(row["id"]) for row in rows if row.get("id") is not None]

    async def create_ticket(
        self,
        client_id: str,
        title: str,
        description: str | None,
        ticket_type: str = "support",
        status: str = "pending",
        priority: str | None = None,
        technician_id: str | None = None,
    ) -> Ticket:
        rows = await self.rest.insert(
            "tickets",
            {
                "client_id": client_id,
                "technician_id": technician_id,
                "title": title,
                "description": description,
                "type": ticket_type,
                "status": status,
                "priority": priority,
            },
        )
        return _ticket(_single(rows, "tickets"))

    async def update_ticket_status(self, ticket_id: str, status: str) -> Ticket:
        rows = await self.rest.update(
            "tickets",
            {"status": status, "updated_at": to_wire(utc_now())},
            [eq("id", ticket_id)],
            returning=True,
        )
        return _ticket(_single(rows, "tickets"))

    # Chats and messages

    async def get_chats(
        self,
        technician_id: str | None = None,
        client_id: str | None = None,
        status: str | None = None,
    ) -> list[Chat]:
        filters = []
        if technician_id or client_id:
            ticket_ids = await self.get_ticket_ids(
                client_id=client_id, technician_id=technician_id
            )
            if not ticket_ids:
                return []
            filters.append(in_("ticket_id", ticket_ids))
        if status:
            filters.append(eq("status", status))
        rows = await self.rest.select(
            "chats",
            CHAT_SELECT,
            filters=filters,
            order=[("last_activity", False)],
        )
        return [_chat(row) for row in rows]

    async def get_chat_ids(
        self,
        technician_id: str | None = None,
        client_id: str | None = None,
    ) -> list[str]:
        ticket_ids = await self.get_ticket_ids(
            client_id=client_id, technician_id=technician_id
        )
        if not ticket_ids:
            return []
        rows = await self.rest.select(
            "chats", "id", filters=[in_("ticket_id", ticket_ids)]
        )
        return [str(row["id"]) for row in rows if row.get("id") is not None]

    async def get_participant_chat_ids(self, user_id: str) -> list[str]:
        rows = await self.rest.select(
            "chat_participants", "chat_id", filters=[eq("user_id", user_id)]
        )
        return [str(row["chat_id"]) for row in rows if row.get("chat_id") is not None]

    async def get_chat_for_ticket(self, ticket_id: str) -> Chat | None:
        rows = await self.rest.select(
            "chats",
            CHAT_SELECT,
            filters=[eq("ticket_id", ticket_id)],
            order=[("last_activity", False)],
            limit=1,
        )
        return _chat(rows[0]) if rows else None

    async def create_chat(
        self, ticket_id: str, subject: str, status: str = "active"
    ) -> Chat:
        rows = await self.rest.insert(
            "chats",
            {
                "ticket_id": ticket_id,
                "subject": subject,
                "status": status,
                "last_activity": to_wire(utc_now()),
            },
        )
        return _chat(_single(rows, "chats"))

    async def get_messages(self, chat_id: str) -> list[Message]:
        rows = await self.rest.select(
            "messages",
            MESSAGE_SELECT,
            filters=[eq("chat_id", chat_id)],
            order=[("created_at", True)],
        )
        return [_message(row) for row in rows]

    async def send_message(self, chat_id: str, sender_id: str, text: str) -> Message:
        rows = await self.rest.insert(
            "messages",
            {"chat_id": chat_id, "user_id": sender_id, "content": text},
        )
        message = _message(_single(rows, "messages"))

        # Second write; a failure here leaves the message with a stale chat header.
        last_activity = utc_now()
        if message.created_at and message.created_at > last_activity:
            last_activity = message.created_at
        await self.rest.update(
            "chats",
            {"last_activity": to_wire(last_activity), "status": "active"},
            [eq("id", chat_id)],
        )
        return message

    async def mark_messages_read(self, chat_id: str, user_id: str) -> None:
        await self.rest.update(
            "messages",
            {"read": True, "updated_at": to_wire(utc_now())},
            [eq("chat_id", chat_id), neq("user_id", user_id), eq("read", False)],
        )

    async def count_unread_messages(
        self, user_id: str, chat_ids: list[str] | None
    ) -> int:
        """Count unread messages not sent by ``user_id``.

        ``chat_ids=None`` counts across every chat visible to the caller; an
        empty list means the user is in no chat and short-circuits to zero.
        """
        if chat_ids is not None and not chat_ids:
            return 0
        filters = [neq("user_id", user_id), eq("read", False)]
        if chat_ids is not None:
            filters.insert(0, in_("chat_id", chat_ids))
        return await self.rest.count("messages", filters)

    # Notifications

    async def get_notifications(self, user_id: str) -> list[Notification]:
        rows = await self.rest.select(
            "notifications",
            filters=[eq("user_id", user_id)],
            order=[("created_at", False)],
        )
        return [_notification(row) for row in rows]

    async def count_unread_notifications(self, user_id: str) -> int:
        return await self.rest.count(
            "notifications", [eq("user_id", user_id), eq("read", False)]
        )

    async def mark_notification_read(self, notification_id: str) -> None:
        await self.rest.update(
            "notifications",
            {"read": True, "updated_at": to_wire(utc_now())},
            [eq("id", notification_id)],
        )

    async def mark_all_notifications_read(self, user_id: str) -> None:
        await self.rest.update(
            "notifications",
            {"read": True, "updated_at": to_wire(utc_now())},
            [eq("user_id", user_id), eq("read", False)],
        )

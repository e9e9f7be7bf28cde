from __future__ import annotations

from typing import Iterable

import structlog

from msp_portal.schemas.chat import Message
from msp_portal.schemas.notification import UnreadCounts
from msp_portal.services.gateway import PortalGateway
from msp_portal.services.portal_session import PortalSession

logger = structlog.get_logger(__name__)


class UnreadCounter:
    """Counter that is Unknown (``None``) until first loaded, then never negative."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.value: int | None = None

    def load(self, count: int) -> int:
        self.value = max(0, int(count))
        return self.value

    def decrement(self, delta: int) -> int | None:
        if self.value is None or delta <= 0:
            return self.value
        self.value = max(0, self.value - delta)
        return self.value


def unread_in_view(messages: Iterable[Message], user_id: str) -> int:
    return sum(
        1 for message in messages if not message.read and message.sender_id != user_id
    )


class UnreadStateReconciler:
    def __init__(self, gateway: PortalGateway, session: PortalSession) -> None:
        self.gateway = gateway
        self.session = session
        self.chats = UnreadCounter("chats")
        self.notifications = UnreadCounter("notifications")

    async def member_chat_ids(self) -> list[str] | None:
        """Chats the user takes part in; ``None`` means every chat (admins)."""
        if self.session.has_role("admin"):
            return None
        chat_ids = set(await self.gateway.get_participant_chat_ids(self.session.user_id))
        if self.session.client_id:
            chat_ids.update(await self.gateway.get_chat_ids(client_id=self.session.client_id))
        if self.session.technician_id:
            chat_ids.update(
                await self.gateway.get_chat_ids(technician_id=self.session.technician_id)
            )
        return sorted(chat_ids)

    async def compute_unread_message_count(self) -> int:
        chat_ids = await self.member_chat_ids()
        count = await self.gateway.count_unread_messages(self.session.user_id, chat_ids)
        return self.chats.load(count)

    async def compute_unread_notification_count(self) -> int:
        count = await self.gateway.count_unread_notifications(self.session.user_id)
        return self.notifications.load(count)

    async def refresh(self) -> UnreadCounts:
        await self.compute_unread_message_count()
        await self.compute_unread_notification_count()
        return self.counts()

    async def mark_chat_read(self, chat_id: str, viewed: Iterable[Message]) -> int:
        # The delta comes from the already-fetched view, taken before the
        # mutation, because the update does not report which rows it touched.
        delta = unread_in_view(viewed, self.session.user_id)
        await self.gateway.mark_messages_read(chat_id, self.session.user_id)
        if delta > 0:
            self.chats.decrement(delta)
        logger.debug("chat_marked_read", chat_id=chat_id, delta=delta, unread=self.chats.value)
        return delta

    async def mark_notification_read(self, notification_id: str, was_unread: bool) -> None:
        await self.gateway.mark_notification_read(notification_id)
        if was_unread:
            self.notifications.decrement(1)

    async def mark_all_notifications_read(self) -> None:
        await self.gateway.mark_all_notifications_read(self.session.user_id)
        self.notifications.load(0)

    def counts(self) -> UnreadCounts:
        return UnreadCounts(chats=self.chats.value, notifications=self.notifications.value)

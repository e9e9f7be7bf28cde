from __future__ import annotations

import structlog

from msp_portal.core.config import settings
from msp_portal.schemas.chat import Chat, Message
from msp_portal.services.gateway import PortalGateway
from msp_portal.services.portal_session import PortalSession
from msp_portal.services.rest_client import GatewayError
from msp_portal.services.unread import UnreadStateReconciler

logger = structlog.get_logger(__name__)


class ChatSessionManager:
    """Conversation list, current selection and message history for one user.

    Only ticket-bound chats are handled. Sends are confirmed by re-fetching the
    message list, so the local view always mirrors the remote store.

    Every remote result is applied only if the manager is still open and the
    selection it was fetched for is still current; late results are dropped.
    """

    def __init__(
        self,
        gateway: PortalGateway,
        session: PortalSession,
        reconciler: UnreadStateReconciler,
    ) -> None:
        self.gateway = gateway
        self.session = session
        self.reconciler = reconciler
        self.chats: list[Chat] = []
        self.selected_chat_id: str | None = None
        self.messages: list[Message] = []
        self.closed = False
        self._generation = 0

    @property
    def selected_chat(self) -> Chat | None:
        for chat in self.chats:
            if chat.id == self.selected_chat_id:
                return chat
        return None

    def _current(self, generation: int) -> bool:
        return not self.closed and generation == self._generation

    async def list_chats(self, status: str | None = None) -> list[Chat]:
        session = self.session
        if session.has_role("admin"):
            chats = await self.gateway.get_chats(status=status)
        elif session.has_role("technician") and session.technician_id:
            chats = await self.gateway.get_chats(
                technician_id=session.technician_id, status=status
            )
        elif session.has_role("client") and session.client_id:
            chats = await self.gateway.get_chats(client_id=session.client_id, status=status)
        else:
            chats = []
        if not self.closed:
            self.chats = chats
        return chats

    async def select_chat(self, chat_id: str) -> list[Message]:
        self._generation += 1
        generation = self._generation

        messages = await self.gateway.get_messages(chat_id)
        if not self._current(generation):
            logger.debug("stale_chat_result_dropped", chat_id=chat_id)
            return messages

        self.selected_chat_id = chat_id
        self.messages = messages
        try:
            await self.reconciler.mark_chat_read(chat_id, messages)
        except GatewayError as exc:
            logger.error("errors", stage="mark_chat_read", chat_id=chat_id, error=str(exc))
            return self.messages

        if self._current(generation):
            user_id = self.session.user_id
            self.messages = [
                message
                if message.read or message.sender_id == user_id
                else message.model_copy(update={"read": True})
                for message in messages
            ]
        return self.messages

    def deselect(self) -> None:
        self._generation += 1
        self.selected_chat_id = None
        self.messages = []

    async def send_message(self, text: str) -> list[Message] | None:
        chat_id = self.selected_chat_id
        if not text.strip() or chat_id is None or self.closed:
            return None
        generation = self._generation

        await self.gateway.send_message(chat_id, self.session.user_id, text)
        messages = await self.gateway.get_messages(chat_id)
        if self._current(generation):
            self.messages = messages
        return messages

    async def switch_to_client(self, client_id: str) -> Chat:
        existing = await self.gateway.get_chats(client_id=client_id)
        if existing:
            chat = existing[0]
        else:
            chat = await self._open_chat_for_client(client_id)
            if not self.closed:
                self.chats = [chat, *self.chats]
        await self.select_chat(chat.id)
        return chat

    async def _open_chat_for_client(self, client_id: str) -> Chat:
        ticket = await self.gateway.create_ticket(
            client_id=client_id,
            title=settings.DEFAULT_TICKET_TITLE,
            description="",
            ticket_type="support",
            status="pending",
            priority="medium",
        )
        try:
            chat = await self.gateway.create_chat(ticket.id, subject=ticket.title)
        except GatewayError:
            # The ticket stays behind without a chat; nothing removes it.
            logger.error("chat_create_failed", ticket_id=ticket.id, client_id=client_id)
            raise
        logger.info("chat_opened", chat_id=chat.id, ticket_id=ticket.id, client_id=client_id)
        return chat

    def close(self) -> None:
        self.closed = True
        self._generation += 1

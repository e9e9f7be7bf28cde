from __future__ import annotations

from datetime import datetime

import structlog

from msp_portal.services.chat_sessions import ChatSessionManager
from msp_portal.services.gateway import PortalGateway
from msp_portal.services.notification_feed import NotificationFeed
from msp_portal.services.portal_session import PortalSession
from msp_portal.services.refresh_scheduler import RefreshScheduler
from msp_portal.services.tickets import TicketBoard
from msp_portal.services.unread import UnreadStateReconciler
from msp_portal.utils.time import utc_now

logger = structlog.get_logger(__name__)


class Workspace:
    """Everything one signed-in browser session keeps between requests."""

    def __init__(
        self,
        key: str,
        session: PortalSession,
        gateway: PortalGateway,
        expires_at: datetime | None = None,
        scheduler: RefreshScheduler | None = None,
    ) -> None:
        self.key = key
        self.session = session
        self.gateway = gateway
        self.expires_at = expires_at
        self.reconciler = UnreadStateReconciler(gateway, session)
        self.chats = ChatSessionManager(gateway, session, self.reconciler)
        self.notifications = NotificationFeed(gateway, session, self.reconciler)
        self.board = TicketBoard(gateway, session)
        self.scheduler = scheduler or RefreshScheduler(
            self.reconciler, self.board, expires_at=expires_at
        )

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= utc_now()

    def open(self) -> None:
        self.scheduler.start()

    async def close(self) -> None:
        self.chats.close()
        await self.scheduler.stop()


class WorkspaceRegistry:
    def __init__(self) -> None:
        self._workspaces: dict[str, Workspace] = {}

    def __len__(self) -> int:
        return len(self._workspaces)

    def get(self, key: str) -> Workspace | None:
        return self._workspaces.get(key)

    async def add(self, workspace: Workspace) -> Workspace:
        await self.prune()
        previous = self._workspaces.pop(workspace.key, None)
        if previous is not None:
            await previous.close()
        self._workspaces[workspace.key] = workspace
        workspace.open()
        logger.info("workspace_opened", user_id=workspace.session.user_id, role=workspace.session.role)
        return workspace

    async def remove(self, key: str) -> None:
        workspace = self._workspaces.pop(key, None)
        if workspace is not None:
            await workspace.close()
            logger.info("workspace_closed", user_id=workspace.session.user_id)

    async def prune(self) -> int:
        expired = [key for key, item in self._workspaces.items() if item.expired]
        for key in expired:
            await self.remove(key)
        return len(expired)

    async def close_all(self) -> None:
        for key in list(self._workspaces):
            await self.remove(key)

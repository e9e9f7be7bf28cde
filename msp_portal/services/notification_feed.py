from __future__ import annotations

from msp_portal.schemas.notification import Notification
from msp_portal.services.gateway import PortalGateway
from msp_portal.services.portal_session import PortalSession
from msp_portal.services.unread import UnreadStateReconciler


class NotificationFeed:
    def __init__(
        self,
        gateway: PortalGateway,
        session: PortalSession,
        reconciler: UnreadStateReconciler,
    ) -> None:
        self.gateway = gateway
        self.session = session
        self.reconciler = reconciler
        self.notifications: list[Notification] = []

    async def list(self) -> list[Notification]:
        self.notifications = await self.gateway.get_notifications(self.session.user_id)
        return self.notifications

    async def mark_one(self, notification_id: str) -> None:
        known = next(
            (item for item in self.notifications if item.id == notification_id), None
        )
        was_unread = known is not None and not known.read
        await self.reconciler.mark_notification_read(notification_id, was_unread)
        self.notifications = [
            item.model_copy(update={"read": True}) if item.id == notification_id else item
            for item in self.notifications
        ]

    async def mark_all(self) -> None:
        await self.reconciler.mark_all_notifications_read()
        self.notifications = [
            item if item.read else item.model_copy(update={"read": True})
            for item in self.notifications
        ]

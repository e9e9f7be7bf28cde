from __future__ import annotations

from datetime import datetime

from msp_portal.schemas.base import ViewModel


class Notification(ViewModel):
    id: str
    user_id: str
    title: str
    message: str
    read: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UnreadCounts(ViewModel):
    chats: int | None = None
    notifications: int | None = None

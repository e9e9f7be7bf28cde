from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

from pydantic import ValidationError
import structlog

from msp_portal.core.config import settings
from msp_portal.services.realtime import RealtimeChannel
from msp_portal.services.rest_client import GatewayError
from msp_portal.services.tickets import TicketBoard
from msp_portal.services.unread import UnreadStateReconciler
from msp_portal.utils.time import utc_now

logger = structlog.get_logger(__name__)


class RefreshScheduler:
    """Periodic unread-count refresh plus the ticket-change subscription.

    Both triggers re-run the full fetch and replace; nothing is diffed.
    """

    def __init__(
        self,
        reconciler: UnreadStateReconciler,
        board: TicketBoard,
        interval: float | None = None,
        realtime: bool | None = None,
        expires_at: datetime | None = None,
    ) -> None:
        self.reconciler = reconciler
        self.board = board
        self.interval = settings.UNREAD_POLL_SEC if interval is None else interval
        self.realtime = settings.REALTIME_ENABLED if realtime is None else realtime
        self.expires_at = expires_at
        self.channel: RealtimeChannel | None = None
        self._stop: asyncio.Event | None = None
        self._tasks: list[asyncio.Task] = []

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= utc_now()

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not all(task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._stop = asyncio.Event()
        self._tasks = [asyncio.create_task(self._poll_loop(self._stop))]
        if self.realtime:
            self.channel = RealtimeChannel(
                "tickets",
                self.on_ticket_change,
                access_token=self.reconciler.session.access_token,
            )
            self._tasks.append(asyncio.create_task(self.channel.run(self._stop)))

    async def stop(self) -> None:
        if self._stop:
            self._stop.set()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        self.channel = None

    async def tick(self) -> None:
        try:
            counts = await self.reconciler.refresh()
        except GatewayError as exc:
            logger.error("errors", stage="unread_refresh", error=str(exc))
            return
        logger.debug("unread_refreshed", chats=counts.chats, notifications=counts.notifications)

    async def on_ticket_change(self, change: dict[str, Any]) -> None:
        logger.info("ticket_changed", type=change.get("type"))
        try:
            await self.board.reload()
        except (GatewayError, ValidationError) as exc:
            logger.error("errors", stage="ticket_reload", error=str(exc))

    async def _poll_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            if self.expired:
                # Setting the event also ends the realtime channel.
                logger.info("refresh_stopped", reason="session_expired")
                stop_event.set()
                return
            await self.tick()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue

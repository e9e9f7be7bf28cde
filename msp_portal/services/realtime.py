from __future__ import annotations

import asyncio
import json
from itertools import count
from typing import Any, Awaitable, Callable
from urllib.parse import urlencode, urlparse, urlunparse

import structlog
import websockets
from websockets.exceptions import WebSocketException

from msp_portal.core.config import settings

logger = structlog.get_logger(__name__)

ChangeHandler = Callable[[dict[str, Any]], Awaitable[None]]


class RealtimeError(Exception):
    pass


def realtime_url() -> str:
    parsed = urlparse(settings.SUPABASE_URL.rstrip("/"))
    scheme = "wss" if parsed.scheme == "https" else "ws"
    query = urlencode({"apikey": settings.SUPABASE_ANON_KEY, "vsn": "1.0.0"})
    return urlunparse(
        (scheme, parsed.netloc, f"{parsed.path}/realtime/v1/websocket", "", query, "")
    )


def join_message(
    topic: str,
    schema: str,
    table: str,
    access_token: str | None,
    ref: str,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "config": {
            "broadcast": {"self": False},
            "presence": {"key": ""},
            "postgres_changes": [{"event": "*", "schema": schema, "table": table}],
        }
    }
    if access_token:
        payload["access_token"] = access_token
    return {
        "topic": topic,
        "event": "phx_join",
        "payload": payload,
        "ref": ref,
        "join_ref": ref,
    }


def heartbeat_message(ref: str) -> dict[str, Any]:
    return {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": ref}


def parse_change(frame: dict[str, Any], topic: str) -> dict[str, Any] | None:
    if frame.get("topic") != topic or frame.get("event") != "postgres_changes":
        return None
    payload = frame.get("payload")
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    return data if isinstance(data, dict) else None


class RealtimeChannel:
    """One postgres-changes subscription over the hosted realtime websocket.

    Reconnects after a fixed delay whenever the socket drops, until the stop
    event passed to :meth:`run` is set.
    """

    def __init__(
        self,
        table: str,
        on_change: ChangeHandler,
        access_token: str | None = None,
        schema: str = "public",
    ) -> None:
        self.table = table
        self.schema = schema
        self.on_change = on_change
        self.access_token = access_token
        self.topic = f"realtime:{schema}:{table}"
        self._refs = count(1)

    def _next_ref(self) -> str:
        return str(next(self._refs))

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                async with websockets.connect(realtime_url()) as socket:
                    await self._join(socket)
                    logger.info("realtime_subscribed", topic=self.topic)
                    await self._serve(socket, stop_event)
            except (WebSocketException, OSError, RealtimeError, json.JSONDecodeError) as exc:
                logger.warning("realtime_disconnected", topic=self.topic, error=str(exc))
            except Exception as exc:
                logger.exception("realtime_failed", topic=self.topic, error=str(exc))
            if stop_event.is_set():
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=settings.REALTIME_RECONNECT_SEC)
            except asyncio.TimeoutError:
                continue

    async def _join(self, socket: Any) -> None:
        ref = self._next_ref()
        await socket.send(
            json.dumps(join_message(self.topic, self.schema, self.table, self.access_token, ref))
        )
        while True:
            frame = json.loads(await socket.recv())
            if frame.get("event") == "phx_reply" and frame.get("ref") == ref:
                status = (frame.get("payload") or {}).get("status")
                if status != "ok":
                    raise RealtimeError(f"join rejected: {frame.get('payload')}")
                return

    async def _serve(self, socket: Any, stop_event: asyncio.Event) -> None:
        heartbeat = asyncio.create_task(self._heartbeat(socket))
        stopper = asyncio.create_task(stop_event.wait())
        listener = asyncio.create_task(self._listen(socket))
        try:
            done, _ = await asyncio.wait(
                {heartbeat, stopper, listener}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                if task is not stopper and task.exception() is not None:
                    raise task.exception()
        finally:
            for task in (heartbeat, stopper, listener):
                task.cancel()
            await asyncio.gather(heartbeat, stopper, listener, return_exceptions=True)
            if stop_event.is_set():
                await self._leave(socket)

    async def _heartbeat(self, socket: Any) -> None:
        while True:
            await asyncio.sleep(settings.REALTIME_HEARTBEAT_SEC)
            await socket.send(json.dumps(heartbeat_message(self._next_ref())))

    async def _listen(self, socket: Any) -> None:
        async for raw in socket:
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("realtime_bad_frame", topic=self.topic)
                continue
            if frame.get("event") == "phx_error":
                raise RealtimeError(f"channel error: {frame.get('payload')}")
            change = parse_change(frame, self.topic)
            if change is not None:
                await self.on_change(change)

    async def _leave(self, socket: Any) -> None:
        try:
            await socket.send(
                json.dumps(
                    {"topic": self.topic, "event": "phx_leave", "payload": {}, "ref": self._next_ref()}
                )
            )
        except (WebSocketException, OSError):
            pass

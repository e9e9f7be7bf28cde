import asyncio
import os

import pytest

os.environ.setdefault("SUPABASE_URL", "https://portal.example.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-secret")
os.environ.setdefault("REALTIME_ENABLED", "false")

from msp_portal.schemas.chat import Message
from msp_portal.schemas.directory import UserProfile
from msp_portal.services.chat_sessions import ChatSessionManager
from msp_portal.services.gateway import PortalGateway
from msp_portal.services.portal_session import PortalSession
from msp_portal.services.rest_client import GatewayError, RestClient
from msp_portal.services.unread import UnreadStateReconciler
from remote_store import RemoteStore, portal_tables


def _session(user_id: str, role: str, **ids: str) -> PortalSession:
    profile = UserProfile(id=user_id, full_name=user_id, role=role)
    return PortalSession(user_id=user_id, access_token="user-token", profile=profile, **ids)


def _manager(gateway, session: PortalSession) -> ChatSessionManager:
    return ChatSessionManager(gateway, session, UnreadStateReconciler(gateway, session))


def _store_manager(session: PortalSession, store: RemoteStore) -> ChatSessionManager:
    gateway = PortalGateway(RestClient(access_token="user-token", transport=store.transport))
    return _manager(gateway, session)


class SlowGateway:
    """Holds message fetches for chosen chats until released."""

    def __init__(self, slow_chats: set[str]) -> None:
        self.slow_chats = slow_chats
        self.release = asyncio.Event()
        self.marked: list[str] = []

    async def get_messages(self, chat_id: str) -> list[Message]:
        if chat_id in self.slow_chats:
            await self.release.wait()
        return [
            Message(id=f"{chat_id}-m", chat_id=chat_id, sender_id="u-tech", content=chat_id)
        ]

    async def mark_messages_read(self, chat_id: str, user_id: str) -> None:
        self.marked.append(chat_id)


def test_whitespace_message_makes_no_remote_calls() -> None:
    store = RemoteStore(portal_tables())
    manager = _store_manager(_session("u-client", "client", client_id="c1"), store)

    async def _run():
        await manager.select_chat("chat-1")
        store.requests.clear()
        return await manager.send_message("   \n\t")

    assert asyncio.run(_run()) is None
    assert store.requests == []


def test_send_without_selection_is_rejected() -> None:
    store = RemoteStore(portal_tables())
    manager = _store_manager(_session("u-client", "client", client_id="c1"), store)
    assert asyncio.run(manager.send_message("hello")) is None
    assert store.requests == []


def test_send_message_refetches_history() -> None:
    store = RemoteStore(portal_tables())
    manager = _store_manager(_session("u-client", "client", client_id="c1"), store)

    async def _run():
        await manager.select_chat("chat-3")
        return await manager.send_message("Thanks!")

    messages = asyncio.run(_run())
    assert [message.content for message in messages] == ["On my way", "Thanks!"]
    assert manager.messages == messages
    assert ("POST", "messages") in store.writes()


def test_select_chat_marks_others_messages_read() -> None:
    store = RemoteStore(portal_tables())
    manager = _store_manager(_session("u-client", "client", client_id="c1"), store)
    manager.reconciler.chats.load(2)

    messages = asyncio.run(manager.select_chat("chat-1"))

    assert manager.selected_chat_id == "chat-1"
    assert [message.read for message in messages] == [False, True, True]
    assert manager.reconciler.chats.value == 1


def test_list_chats_scoped_by_role() -> None:
    store = RemoteStore(portal_tables())
    client = _store_manager(_session("u-client", "client", client_id="c1"), store)
    technician = _store_manager(_session("u-tech", "technician", technician_id="tech-1"), store)
    admin = _store_manager(_session("u-admin", "admin"), store)
    orphan = _store_manager(_session("u-other", "client"), store)

    assert [chat.id for chat in asyncio.run(client.list_chats())] == ["chat-3", "chat-1"]
    assert [chat.id for chat in asyncio.run(technician.list_chats())] == ["chat-1"]
    assert [chat.id for chat in asyncio.run(admin.list_chats("waiting"))] == ["chat-2"]
    assert asyncio.run(orphan.list_chats()) == []


def test_switch_to_client_without_chat_creates_ticket_and_chat() -> None:
    store = RemoteStore(portal_tables())
    manager = _store_manager(_session("u-tech", "technician", technician_id="tech-1"), store)

    chat = asyncio.run(manager.switch_to_client("c9"))

    assert store.writes().count(("POST", "tickets")) == 1
    assert store.writes().count(("POST", "chats")) == 1
    ticket = store.rows("tickets")[-1]
    assert chat.ticket_id == ticket["id"]
    assert ticket["client_id"] == "c9"
    assert ticket["title"] == "New Support Request"
    assert ticket["status"] == "pending"
    assert ticket["priority"] == "medium"
    assert ticket["technician_id"] is None
    assert manager.selected_chat_id == chat.id
    assert manager.chats[0].id == chat.id


def test_switch_to_client_reuses_existing_chat() -> None:
    store = RemoteStore(portal_tables())
    manager = _store_manager(_session("u-tech", "technician", technician_id="tech-1"), store)

    chat = asyncio.run(manager.switch_to_client("c1"))

    assert chat.id == "chat-3"
    assert ("POST", "tickets") not in store.writes()
    assert manager.selected_chat_id == "chat-3"


def test_failed_chat_insert_leaves_ticket_behind() -> None:
    store = RemoteStore(portal_tables())
    store.fail("POST", "chats")
    manager = _store_manager(_session("u-tech", "technician", technician_id="tech-1"), store)

    with pytest.raises(GatewayError):
        asyncio.run(manager.switch_to_client("c9"))
    assert store.rows("tickets")[-1]["client_id"] == "c9"
    assert manager.selected_chat_id is None


def test_result_after_close_is_dropped() -> None:
    gateway = SlowGateway({"chat-1"})
    manager = _manager(gateway, _session("u-client", "client", client_id="c1"))

    async def _run():
        task = asyncio.create_task(manager.select_chat("chat-1"))
        await asyncio.sleep(0)
        manager.close()
        gateway.release.set()
        await task

    asyncio.run(_run())
    assert manager.selected_chat_id is None
    assert manager.messages == []
    assert gateway.marked == []


def test_earlier_selection_result_does_not_override_newer() -> None:
    gateway = SlowGateway({"chat-1"})
    manager = _manager(gateway, _session("u-client", "client", client_id="c1"))

    async def _run():
        first = asyncio.create_task(manager.select_chat("chat-1"))
        await asyncio.sleep(0)
        await manager.select_chat("chat-3")
        gateway.release.set()
        await first

    asyncio.run(_run())
    assert manager.selected_chat_id == "chat-3"
    assert [message.content for message in manager.messages] == ["chat-3"]
    assert gateway.marked == ["chat-3"]

import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt

os.environ.setdefault("SUPABASE_URL", "https://portal.example.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-secret")
os.environ.setdefault("REALTIME_ENABLED", "false")

from msp_portal.core.config import settings
from msp_portal.main import app
from msp_portal.services.rest_client import RestClient
from msp_portal.services.workspace import WorkspaceRegistry
from remote_store import RemoteStore, portal_tables

ACCOUNTS = {
    "client": ("client@example.com", "u-client"),
    "technician": ("tech@example.com", "u-tech"),
    "admin": ("admin@example.com", "u-admin"),
}


def _token(user_id: str, session_id: str) -> str:
    payload = {
        "sub": user_id,
        "aud": "authenticated",
        "session_id": session_id,
        "exp": datetime.now(tz=timezone.utc) + timedelta(hours=1),
    }
    return jwt.encode(payload, settings.SUPABASE_JWT_SECRET, algorithm="HS256")


@pytest.fixture()
def store() -> RemoteStore:
    store = RemoteStore(portal_tables())
    for role, (email, user_id) in ACCOUNTS.items():
        store.add_login(email, "secret123", user_id, _token(user_id, f"session-{role}"))
    return store


@pytest.fixture()
def client(store: RemoteStore):
    app.state.rest = RestClient(transport=store.transport)
    app.state.workspaces = WorkspaceRegistry()
    with TestClient(app) as test_client:
        yield test_client


def _login(client: TestClient, role: str) -> dict[str, str]:
    email, _ = ACCOUNTS[role]
    response = client.post("/auth/login", json={"email": email, "password": "secret123"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_health(client: TestClient) -> None:
    assert client.get("/health").json()["status"] == "ok"


def test_login_loads_profile_and_session(client: TestClient) -> None:
    headers = _login(client, "client")

    me = client.get("/auth/me", headers=headers).json()
    assert me["user_id"] == "u-client"
    assert me["profile"]["role"] == "client"
    assert me["profile"]["fullName"] == "Cara Client"
    assert len(app.state.workspaces) == 1


def test_login_with_wrong_password_is_unauthorized(client: TestClient) -> None:
    response = client.post(
        "/auth/login", json={"email": "client@example.com", "password": "nope"}
    )
    assert response.status_code == 401


def test_login_is_rate_limited(client: TestClient) -> None:
    payload = {"email": "flood@example.com", "password": "nope"}
    statuses = [
        client.post("/auth/login", json=payload).status_code
        for _ in range(settings.LOGIN_RATE_LIMIT_MAX_ATTEMPTS + 1)
    ]
    assert statuses[-1] == 429
    assert set(statuses[:-1]) == {401}


def test_requests_without_session_are_rejected(client: TestClient) -> None:
    assert client.get("/tickets").status_code in {401, 403}
    headers = {"Authorization": f"Bearer {_token('u-client', 'never-logged-in')}"}
    assert client.get("/tickets", headers=headers).status_code == 401


def test_logout_drops_workspace(client: TestClient) -> None:
    headers = _login(client, "client")
    assert client.post("/auth/logout", headers=headers).json() == {"status": "ok"}
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_client_ticket_board(client: TestClient) -> None:
    headers = _login(client, "client")

    board = client.get("/tickets", headers=headers).json()
    assert [ticket["id"] for ticket in board["tickets"]] == ["t3", "t1"]
    assert board["activeTicketId"] == "t3"
    assert {item["status"]: item["count"] for item in board["statusCounts"]} == {
        "pending": 0,
        "in-progress": 1,
        "complete": 1,
    }


def test_client_submits_request(client: TestClient, store: RemoteStore) -> None:
    headers = _login(client, "client")
    response = client.post(
        "/tickets/requests",
        headers=headers,
        json={
            "itemType": "software",
            "itemName": "Figma",
            "specifications": "Professional seat license",
            "justification": "Design work for the new client portal",
            "urgency": "normal",
        },
    )
    assert response.status_code == 201
    body = response.json()
    assert body["type"] == "software"
    assert body["priority"] == "medium"
    assert store.rows("tickets")[-1]["client_id"] == "c1"


def test_short_support_ticket_is_rejected(client: TestClient, store: RemoteStore) -> None:
    headers = _login(client, "client")
    response = client.post(
        "/tickets/support",
        headers=headers,
        json={"title": "x", "description": "short", "priority": "low"},
    )
    assert response.status_code == 422
    assert len(store.rows("tickets")) == 3


def test_status_update_requires_staff(client: TestClient) -> None:
    client_headers = _login(client, "client")
    tech_headers = _login(client, "technician")

    denied = client.patch(
        "/tickets/t2/status", headers=client_headers, json={"status": "complete"}
    )
    assert denied.status_code == 403

    updated = client.patch(
        "/tickets/t2/status", headers=tech_headers, json={"status": "complete"}
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "complete"


def test_ticket_conversation(client: TestClient) -> None:
    headers = _login(client, "client")

    view = client.get("/tickets/t1/messages", headers=headers).json()
    assert view["chat"]["id"] == "chat-1"
    assert [message["id"] for message in view["messages"]] == ["m1", "m2", "m3"]

    posted = client.post("/tickets/t1/messages", headers=headers, json={"text": "Thanks"})
    assert posted.json()["messages"][-1]["content"] == "Thanks"
    assert posted.json()["messages"][-1]["senderId"] == "u-client"

    assert client.get("/tickets/t2/messages", headers=headers).status_code == 404


def test_empty_message_is_rejected(client: TestClient, store: RemoteStore) -> None:
    headers = _login(client, "client")
    response = client.post("/tickets/t1/messages", headers=headers, json={"text": "  "})
    assert response.status_code == 400
    assert ("POST", "messages") not in store.writes()


def test_chat_selection_and_send(client: TestClient) -> None:
    headers = _login(client, "client")

    chats = client.get("/chats", headers=headers).json()
    assert [chat["id"] for chat in chats["data"]] == ["chat-3", "chat-1"]
    assert chats["total"] == 2

    assert client.post("/chats/chat-2/select", headers=headers).status_code == 404

    view = client.post("/chats/chat-3/select", headers=headers).json()
    assert view["chat"]["id"] == "chat-3"
    assert view["messages"][0]["read"] is True

    sent = client.post("/chats/current/messages", headers=headers, json={"text": "See you"})
    assert [message["content"] for message in sent.json()["messages"]] == [
        "On my way",
        "See you",
    ]

    cleared = client.delete("/chats/current", headers=headers).json()
    assert cleared == {"chat": None, "messages": []}
    missing = client.post("/chats/current/messages", headers=headers, json={"text": "hi"})
    assert missing.status_code == 400


def test_technician_switches_to_new_client(client: TestClient, store: RemoteStore) -> None:
    headers = _login(client, "technician")

    clients = client.get("/technician/clients", headers=headers).json()
    assert {item["id"] for item in clients["data"]} == {"c1", "c2"}

    view = client.post("/technician/clients/c9/switch", headers=headers).json()
    ticket = store.rows("tickets")[-1]
    assert view["chat"]["ticketId"] == ticket["id"]
    assert view["messages"] == []

    waiting = client.get("/technician/chats", headers=headers, params={"filter": "waiting"})
    assert waiting.json()["data"] == []


def test_technician_routes_reject_clients(client: TestClient) -> None:
    headers = _login(client, "client")
    assert client.get("/technician/clients", headers=headers).status_code == 403


def test_notifications_and_unread_counts(client: TestClient) -> None:
    headers = _login(client, "client")

    counts = client.post("/unread/refresh", headers=headers).json()
    assert counts == {"chats": 2, "notifications": 1}

    items = client.get("/notifications", headers=headers).json()["data"]
    assert [item["id"] for item in items] == ["n2", "n1"]

    after = client.post("/notifications/n2/read", headers=headers).json()
    assert after["notifications"] == 0
    again = client.post("/notifications/read-all", headers=headers).json()
    assert again["notifications"] == 0


def test_admin_manages_users_and_companies(client: TestClient, store: RemoteStore) -> None:
    store.functions["create-user"] = lambda payload: (
        200,
        {"success": True, "user": {"id": "u-new", "email": payload["email"]}},
    )
    headers = _login(client, "admin")

    users = client.get("/admin/users", headers=headers).json()
    assert [user["fullName"] for user in users["data"]][0] == "Ada Admin"

    created = client.post(
        "/admin/users",
        headers=headers,
        json={"email": "new@example.com", "password": "secret1", "name": "New User"},
    )
    assert created.status_code == 201
    assert created.json()["user"]["id"] == "u-new"

    company = client.post("/admin/companies", headers=headers, json={"name": "Globex"})
    assert company.status_code == 201
    assert company.json()["name"] == "Globex"
    assert client.get(f"/admin/companies/{company.json()['id']}/locations", headers=headers).json() == {
        "data": [],
        "total": 0,
    }


def test_admin_routes_reject_technicians(client: TestClient) -> None:
    headers = _login(client, "technician")
    assert client.get("/admin/users", headers=headers).status_code == 403


def test_remote_failure_becomes_bad_gateway(client: TestClient, store: RemoteStore) -> None:
    headers = _login(client, "client")
    store.fail("GET", "tickets", 500)
    response = client.get("/tickets", headers=headers)
    assert response.status_code == 502
    assert response.json()["error"] == "Remote store request failed"

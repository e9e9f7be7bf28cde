from __future__ import annotations

from typing import Any

from fastapi import HTTPException

from msp_portal.schemas.chat import Chat, ChatView
from msp_portal.services.chat_sessions import ChatSessionManager


def list_response(items: list[Any], total: int | None = None) -> dict[str, Any]:
    return {"data": items, "total": len(items) if total is None else total}


def require_text(text: str) -> str:
    if not text.strip():
        raise HTTPException(status_code=400, detail="Message is empty")
    return text


def chat_view(manager: ChatSessionManager, chat: Chat | None = None) -> ChatView:
    return ChatView(chat=chat or manager.selected_chat, messages=manager.messages)

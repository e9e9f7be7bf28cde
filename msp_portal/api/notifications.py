from __future__ import annotations

from fastapi import APIRouter, Depends

from msp_portal.api.deps import get_workspace
from msp_portal.api.utils import list_response
from msp_portal.schemas.notification import UnreadCounts
from msp_portal.services.workspace import Workspace

router = APIRouter(tags=["notifications"])


@router.get("/notifications", response_model=dict)
async def list_notifications(workspace: Workspace = Depends(get_workspace)) -> dict:
    return list_response(await workspace.notifications.list())


@router.post("/notifications/read-all", response_model=UnreadCounts)
async def mark_all_read(workspace: Workspace = Depends(get_workspace)) -> UnreadCounts:
    await workspace.notifications.mark_all()
    return workspace.reconciler.counts()


@router.post("/notifications/{notification_id}/read", response_model=UnreadCounts)
async def mark_read(
    notification_id: str,
    workspace: Workspace = Depends(get_workspace),
) -> UnreadCounts:
    await workspace.notifications.mark_one(notification_id)
    return workspace.reconciler.counts()


@router.get("/unread", response_model=UnreadCounts)
async def unread_counts(workspace: Workspace = Depends(get_workspace)) -> UnreadCounts:
    return workspace.reconciler.counts()


@router.post("/unread/refresh", response_model=UnreadCounts)
async def refresh_unread(workspace: Workspace = Depends(get_workspace)) -> UnreadCounts:
    return await workspace.reconciler.refresh()

from __future__ import annotations

from fastapi import APIRouter, Depends

from msp_portal.api.deps import require_role
from msp_portal.api.utils import list_response
from msp_portal.schemas.directory import UserCreate
from msp_portal.services.workspace import Workspace

router = APIRouter(prefix="/admin/users", tags=["admin"])


@router.get("", response_model=dict)
async def list_users(workspace: Workspace = Depends(require_role("admin"))) -> dict:
    return list_response(await workspace.gateway.get_users())


@router.post("", response_model=dict, status_code=201)
async def create_user(
    payload: UserCreate,
    workspace: Workspace = Depends(require_role("admin")),
) -> dict:
    user = await workspace.gateway.create_user(
        email=payload.email,
        password=payload.password,
        name=payload.name,
        role=payload.role,
        company_id=payload.company_id,
    )
    return {"status": "created", "user": user}

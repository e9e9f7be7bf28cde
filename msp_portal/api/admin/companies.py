from __future__ import annotations

from fastapi import APIRouter, Depends

from msp_portal.api.deps import require_role
from msp_portal.api.utils import list_response
from msp_portal.schemas.directory import Company, CompanyCreate
from msp_portal.services.workspace import Workspace

router = APIRouter(prefix="/admin/companies", tags=["admin"])


@router.get("", response_model=dict)
async def list_companies(workspace: Workspace = Depends(require_role("admin"))) -> dict:
    return list_response(await workspace.gateway.get_companies())


@router.post("", response_model=Company, status_code=201)
async def create_company(
    payload: CompanyCreate,
    workspace: Workspace = Depends(require_role("admin")),
) -> Company:
    return await workspace.gateway.create_company(
        name=payload.name,
        address=payload.address,
        phone=payload.phone,
        email=payload.email,
    )


@router.get("/{company_id}/locations", response_model=dict)
async def list_locations(
    company_id: str,
    workspace: Workspace = Depends(require_role("admin")),
) -> dict:
    return list_response(await workspace.gateway.get_company_locations(company_id))

from __future__ import annotations

import ipaddress

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from msp_portal.core.config import settings
from msp_portal.core.logging import bind_session_context
from msp_portal.services.auth import AuthError, decode_token
from msp_portal.services.rest_client import RestClient
from msp_portal.services.workspace import Workspace, WorkspaceRegistry

security = HTTPBearer()


def session_key(claims: dict) -> str:
    return str(claims.get("session_id") or claims.get("sub") or "")


def get_rest_client(request: Request) -> RestClient:
    return request.app.state.rest


def get_registry(request: Request) -> WorkspaceRegistry:
    return request.app.state.workspaces


async def get_workspace(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    registry: WorkspaceRegistry = Depends(get_registry),
) -> Workspace:
    try:
        claims = decode_token(credentials.credentials)
    except AuthError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    key = session_key(claims)
    workspace = registry.get(key) if key else None
    if workspace is not None and workspace.expired:
        await registry.remove(key)
        workspace = None
    if workspace is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired")
    bind_session_context(workspace.session.user_id, workspace.session.role)
    return workspace


def require_role(*roles: str):
    async def _guard(workspace: Workspace = Depends(get_workspace)) -> Workspace:
        if not workspace.session.has_role(*roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return workspace

    return _guard


async def get_request_ip(request: Request) -> str | None:
    def _valid_ip(raw: str | None) -> str | None:
        if not raw:
            return None
        try:
            return str(ipaddress.ip_address(raw.strip()))
        except ValueError:
            return None

    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            for candidate in forwarded.split(","):
                parsed = _valid_ip(candidate)
                if parsed:
                    return parsed
        real_ip = _valid_ip(request.headers.get("x-real-ip"))
        if real_ip:
            return real_ip

    if request.client:
        return _valid_ip(request.client.host)
    return None

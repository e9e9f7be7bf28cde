from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials

from msp_portal.api.deps import (
    get_registry,
    get_request_ip,
    get_rest_client,
    get_workspace,
    security,
    session_key,
)
from msp_portal.core.config import settings
from msp_portal.schemas.auth import LoginRequest, SessionOut, TokenResponse
from msp_portal.services.auth import AuthClient, AuthError, decode_token
from msp_portal.services.gateway import PortalGateway
from msp_portal.services.portal_session import load_session
from msp_portal.services.rate_limit import LoginRateLimiter
from msp_portal.services.rest_client import RestClient
from msp_portal.services.workspace import Workspace, WorkspaceRegistry

router = APIRouter(prefix="/auth", tags=["auth"])

login_limiter = LoginRateLimiter(
    settings.LOGIN_RATE_LIMIT_MAX_ATTEMPTS,
    settings.LOGIN_RATE_LIMIT_WINDOW_SEC,
)


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    rest: RestClient = Depends(get_rest_client),
    registry: WorkspaceRegistry = Depends(get_registry),
) -> TokenResponse:
    ip = await get_request_ip(request)
    limiter_key = ip or payload.email.lower()
    if not login_limiter.allow(limiter_key):
        raise HTTPException(status_code=429, detail="Too many login attempts")

    try:
        data = await AuthClient(rest).sign_in(payload.email, payload.password)
        access_token = data["access_token"]
        claims = decode_token(access_token)
    except AuthError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    user = data["user"]
    gateway = PortalGateway(rest.with_token(access_token))
    session = await load_session(gateway, str(user["id"]), access_token, user.get("email"))

    expires_at = None
    if claims.get("exp"):
        expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
    await registry.add(Workspace(session_key(claims), session, gateway, expires_at))
    login_limiter.reset(limiter_key)

    return TokenResponse(
        access_token=access_token,
        refresh_token=data.get("refresh_token"),
        expires_in=data.get("expires_in"),
        profile=session.profile,
    )


@router.post("/logout")
async def logout(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    workspace: Workspace = Depends(get_workspace),
    rest: RestClient = Depends(get_rest_client),
    registry: WorkspaceRegistry = Depends(get_registry),
) -> dict:
    await AuthClient(rest).sign_out(credentials.credentials)
    await registry.remove(workspace.key)
    return {"status": "ok"}


@router.get("/me", response_model=SessionOut)
async def me(workspace: Workspace = Depends(get_workspace)) -> SessionOut:
    session = workspace.session
    return SessionOut(user_id=session.user_id, email=session.email, profile=session.profile)

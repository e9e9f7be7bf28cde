from __future__ import annotations

from typing import Any

import structlog
from jose import JWTError, jwt

from msp_portal.core.config import settings
from msp_portal.services.rest_client import GatewayError, RestClient

logger = structlog.get_logger(__name__)


class AuthError(Exception):
    pass


def decode_token(token: str) -> dict:
    """Verify an access token issued by the hosted auth service."""
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError as exc:
        raise AuthError("Invalid token") from exc


class AuthClient:
    def __init__(self, rest: RestClient) -> None:
        self.rest = rest

    async def sign_in(self, email: str, password: str) -> dict[str, Any]:
        try:
            data = await self.rest.auth_request(
                "token",
                {"email": email, "password": password},
                params=[("grant_type", "password")],
            )
        except GatewayError as exc:
            if exc.status_code is not None and 400 <= exc.status_code < 500:
                raise AuthError("Invalid credentials") from exc
            raise
        if not data.get("access_token") or not isinstance(data.get("user"), dict):
            raise AuthError("Invalid auth response")
        return data

    async def sign_out(self, access_token: str) -> None:
        try:
            await self.rest.with_token(access_token).auth_request("logout")
        except GatewayError as exc:
            # The local session is dropped regardless.
            logger.warning("sign_out_failed", error=str(exc))

from __future__ import annotations

from dataclasses import dataclass

import structlog

from msp_portal.schemas.directory import UserProfile
from msp_portal.services.gateway import PortalGateway
from msp_portal.services.rest_client import GatewayError

logger = structlog.get_logger(__name__)


@dataclass
class PortalSession:
    """Identity of the signed-in user, passed explicitly to every service."""

    user_id: str
    access_token: str
    email: str | None = None
    profile: UserProfile | None = None
    client_id: str | None = None
    technician_id: str | None = None

    @property
    def role(self) -> str | None:
        return self.profile.role if self.profile else None

    def has_role(self, *roles: str) -> bool:
        return self.role is not None and self.role in roles


async def load_session(
    gateway: PortalGateway,
    user_id: str,
    access_token: str,
    email: str | None = None,
) -> PortalSession:
    session = PortalSession(user_id=user_id, access_token=access_token, email=email)
    try:
        session.profile = await gateway.get_user_profile(user_id)
    except GatewayError as exc:
        logger.warning("profile_load_failed", user_id=user_id, error=str(exc))
        return session

    if session.profile is None:
        logger.warning("profile_missing", user_id=user_id)
        return session

    try:
        if session.role == "client":
            client = await gateway.get_client_for_user(user_id)
            session.client_id = client.id if client else None
        elif session.role == "technician":
            technician = await gateway.get_technician_for_user(user_id)
            session.technician_id = technician.id if technician else None
    except GatewayError as exc:
        logger.warning("role_record_load_failed", user_id=user_id, error=str(exc))
    return session

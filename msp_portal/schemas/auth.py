from __future__ import annotations

from pydantic import BaseModel, Field

from msp_portal.schemas.directory import UserProfile


class LoginRequest(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    expires_in: int | None = None
    profile: UserProfile | None = None


class SessionOut(BaseModel):
    user_id: str
    email: str | None = None
    profile: UserProfile | None = None

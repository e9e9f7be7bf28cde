from __future__ import annotations

from pydantic import AliasChoices, Field

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    SUPABASE_URL: str = Field(
        validation_alias=AliasChoices("SUPABASE_URL", "VITE_SUPABASE_URL")
    )
    SUPABASE_ANON_KEY: str = Field(
        validation_alias=AliasChoices("SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY")
    )
    SUPABASE_JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"

    REQUEST_TIMEOUT_SEC: float = 20.0

    UNREAD_POLL_SEC: float = 30.0
    REALTIME_ENABLED: bool = True
    REALTIME_HEARTBEAT_SEC: float = 25.0
    REALTIME_RECONNECT_SEC: float = 5.0

    DEFAULT_TICKET_TITLE: str = "New Support Request"

    ADMIN_UI_ORIGINS: str = ""
    TRUST_PROXY_HEADERS: bool = False
    LOGIN_RATE_LIMIT_WINDOW_SEC: int = 300
    LOGIN_RATE_LIMIT_MAX_ATTEMPTS: int = 5


settings = Settings()

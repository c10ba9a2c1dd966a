from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "CourseGate"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parent.parent.parent / "data")

    APP_SECRET: str = "dev-insecure-secret-change-me"
    SESSION_COOKIE_NAME: str = "cg_session"
    SESSION_MAX_AGE: int = 60 * 60 * 24 * 7
    SESSION_HTTPS_ONLY: bool = False

    # Remote identity provider (GoTrue-compatible REST API)
    AUTH_URL: str = "http://localhost:54321"
    AUTH_PUBLISHABLE_KEY: str = Field(
        default="", validation_alias=AliasChoices("AUTH_PUBLISHABLE_KEY", "AUTH_ANON_KEY")
    )
    AUTH_TIMEOUT_SECONDS: float = 6.0
    AUTH_JWT_SECRET: str = ""
    AUTH_JWT_AUDIENCE: str = "authenticated"

    DB_URL: str = Field(default="", validation_alias=AliasChoices("DB_URL", "DATABASE_URL"))

    REDIRECT_LOGIN: str = "/login"
    REDIRECT_NO_ACCESS: str = "/no-access"
    REDIRECT_AFTER_LOGIN: str = "/account"
    REDIRECT_AFTER_SIGNUP: str = "/account"
    REDIRECT_AFTER_LOGOUT: str = "/login"
    PASSWORD_RESET_REDIRECT: str = "/update-password"
    COURSES_BASE_PATH: str = "/courses/"

    # The ?debug flag is ignored unless this is switched on locally.
    GATE_DEBUG_BYPASS_ENABLED: bool = False
    GATE_DENY_COURSE_WITHOUT_KEY: bool = False

    @property
    def database_url(self) -> str:
        if self.DB_URL:
            return self.DB_URL
        return f"sqlite+aiosqlite:///{self.DATA_DIR / 'coursegate.db'}"

    @property
    def auth_base_url(self) -> str:
        return f"{self.AUTH_URL.rstrip('/')}/auth/v1"


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    if not settings.DB_URL:
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return settings

# backend/eventhub/config.py
from functools import lru_cache
from typing import List
import secrets

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # environment: "dev" for running the app locally, "test" for pytest
    ENV: str = "dev"

    DATABASE_URL: str | None = None
    TEST_DATABASE_URL: str | None = None

    # --- Auth / JWT ---
    JWT_SECRET: str | None = Field(None, description="JWT signing secret. Must be set outside dev/test.")
    JWT_ALG: str = "HS256"
    JWT_ACCESS_MIN: int = 30
    JWT_REFRESH_DAYS: int = 7

    # --- Security controls ---
    FORCE_HTTPS: bool = False
    TRUSTED_HOSTS: List[str] = Field(
        default_factory=lambda: [
            "localhost",
            "127.0.0.1",
            "testserver",
            "test",
        ]
    )
    HSTS_MAX_AGE: int = 31536000  # 1 year
    CONTENT_SECURITY_POLICY: str = (
        "default-src 'self'; "
        "img-src 'self' data:; "
        "style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; "
        "connect-src 'self'; "
        "frame-ancestors 'none'"
    )
    DB_APP_ROLE: str | None = None
    DB_REQUIRE_SSL: bool = True

    # --- Scheduler ---
    # Toggle the background scheduler that runs the periodic "sync all sources" job.
    SCHEDULER_ENABLED: bool = True
    # IANA timezone name used by APScheduler (e.g., "UTC", "America/New_York").
    SCHEDULER_TZ: str = "UTC"
    # Optional dedicated job store URL. Falls back to DATABASE_URL, then to memory.
    SCHEDULER_DB_URL: str | None = None
    SYNC_INTERVAL_MINUTES: int = 60

    # --- External sources ---
    SYNC_MAX_WORKERS: int = 4
    FETCH_TIMEOUT_SECONDS: float = 20.0
    # Wall-clock allowance for one adapter run, across every request it makes.
    FETCH_RUN_BUDGET_SECONDS: float = 60.0
    FETCH_USER_AGENT: str = (
        "Mozilla/5.0 (compatible; CommunityEventHub/1.0; +https://hubdecomunidades.mx)"
    )
    # Every imported start instant is converted into this zone before storage.
    EVENT_TIMEZONE: str = "America/Mexico_City"

    # --- Calendar feed ---
    FEED_CALENDAR_NAME: str = "Hub de Comunidades - Eventos"
    FEED_PRODID: str = "-//Hub de Comunidades//Eventos//ES"
    FEED_UID_DOMAIN: str = "hubdecomunidades.mx"
    FEED_DEFAULT_DURATION_HOURS: int = 2
    FEED_LOOKBACK_DAYS: int = 0

    @field_validator("FETCH_TIMEOUT_SECONDS")
    @classmethod
    def _check_fetch_timeout(cls, v: float) -> float:
        if not 10 <= v <= 30:
            raise ValueError("FETCH_TIMEOUT_SECONDS must be between 10 and 30 seconds")
        return v

    @field_validator("FETCH_RUN_BUDGET_SECONDS")
    @classmethod
    def _check_run_budget(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("FETCH_RUN_BUDGET_SECONDS must be positive")
        return v

    @model_validator(mode="after")
    def _check_jwt_secret(self):
        # In dev/test, auto-generate an ephemeral secret if none provided to avoid committing secrets.
        if self.ENV in ("dev", "test"):
            if not self.JWT_SECRET:
                self.JWT_SECRET = secrets.token_urlsafe(32)
            return self
        # In non-dev/test environments, require an explicit secret from env.
        if not self.JWT_SECRET:
            raise ValueError("JWT_SECRET must be set via environment for non-dev/test environments.")
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]

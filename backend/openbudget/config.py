# backend/openbudget/config.py
from functools import lru_cache
import secrets

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # environment: "dev" for running the app locally, "test" for pytest
    ENV: str = "dev"

    DATABASE_URL: str | None = None
    TEST_DATABASE_URL: str | None = None
    DB_REQUIRE_SSL: bool = False

    # --- Upstream OpenBudget API ---
    OPENBUDGET_BASE_URL: str = "https://api.openbudget.gov.ua/api/public"
    OPENBUDGET_TIMEOUT_SECONDS: float = Field(30.0, gt=0)
    # The public endpoint has served broken certificate chains in the past.
    OPENBUDGET_VERIFY_SSL: bool = True

    # --- Sync ---
    SYNC_MAX_CONCURRENCY: int = Field(30, ge=1, le=200)
    SYNC_DEFAULT_PERIOD: str = "MONTH"

    # --- Forecast defaults ---
    FORECAST_DEFAULT_ALPHA: float = Field(0.3, gt=0, le=1)
    FORECAST_DEFAULT_WINDOW: int = Field(3, ge=1)

    # --- Auth (tokens are issued elsewhere; we only verify them) ---
    JWT_SECRET: str | None = Field(None, description="JWT verification secret. Must be set outside dev/test.")
    JWT_ALG: str = "HS256"
    JWT_ACCESS_MIN: int = 30
    ADMIN_ROLE: str = "admin"

    # --- Scheduler ---
    SCHEDULER_ENABLED: bool = False
    # IANA timezone name used by APScheduler (e.g., "UTC", "Europe/Kyiv").
    SCHEDULER_TZ: str = "Europe/Kyiv"
    # Optional persistent job store URL. In-memory job store when unset.
    SCHEDULER_DB_URL: str | None = None
    SCHEDULER_SYNC_HOUR: int = Field(2, ge=0, le=23)
    SCHEDULER_RETRY_HOURS: int = Field(6, ge=1)

    LOG_LEVEL: str = "INFO"

    @model_validator(mode="after")
    def _check_jwt_secret(self):
        # In dev/test, auto-generate an ephemeral secret if none provided to avoid committing secrets.
        if self.ENV in ("dev", "test"):
            if not self.JWT_SECRET:
                self.JWT_SECRET = secrets.token_urlsafe(32)
            return self
        if not self.JWT_SECRET:
            raise ValueError("JWT_SECRET must be set via environment for non-dev/test environments.")
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]

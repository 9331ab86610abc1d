"""CostOps settings, read from the environment and the backend .env files."""

import os
from pathlib import Path
from typing import List
from urllib.parse import urlparse

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BACKEND_DIR = Path(__file__).resolve().parent.parent.parent


def get_env_file() -> str:
    """
    Pick the .env file for APP_ENV.

    `.env.test` and `.env.production` win when they exist; `.env` otherwise.
    """
    app_env = os.getenv("APP_ENV", "development")
    if app_env in ("test", "production"):
        candidate = BACKEND_DIR / f".env.{app_env}"
        if candidate.exists():
            return str(candidate)
    return str(BACKEND_DIR / ".env")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=get_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "CostOps"
    APP_ENV: str = "development"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"

    # Fernet key protecting stored connection credentials
    ENCRYPTION_KEY: str

    # Plain str so tests can point at SQLite
    DATABASE_URL: str

    # Celery broker and result backend
    REDIS_URL: str = "redis://localhost:6379/0"

    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_MAX_AGE: int = 600

    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    # GitHub App that opens the infrastructure pull requests
    GITHUB_APP_ID: str = ""
    GITHUB_APP_PRIVATE_KEY: str = ""
    GITHUB_API_URL: str = "https://api.github.com"
    DEFAULT_BASE_BRANCH: str = "main"

    METRICS_LOOKBACK_DAYS: int = 30
    DAILY_CYCLE_HOUR: int = 2  # UTC
    DAILY_CYCLE_TIME_LIMIT: int = 2 * 60 * 60  # seconds, per organization

    @field_validator("GITHUB_APP_PRIVATE_KEY", mode="after")
    @classmethod
    def expand_private_key_newlines(cls, v: str) -> str:
        """PEM keys are usually stored on one line with escaped newlines."""
        return v.replace("\\n", "\n")

    @field_validator("DAILY_CYCLE_HOUR", mode="after")
    @classmethod
    def validate_daily_cycle_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("DAILY_CYCLE_HOUR must be between 0 and 23")
        return v

    @field_validator("DAILY_CYCLE_TIME_LIMIT", mode="after")
    @classmethod
    def validate_daily_cycle_time_limit(cls, v: int) -> int:
        if v < 600:
            raise ValueError("DAILY_CYCLE_TIME_LIMIT must be at least 600 seconds")
        return v

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def split_allowed_origins(cls, v: str | List[str]) -> List[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("ALLOWED_ORIGINS", mode="after")
    @classmethod
    def validate_allowed_origins(cls, origins: List[str], info) -> List[str]:
        """
        Reject wildcards and anything that is not scheme://host[:port].

        Production origins must use HTTPS unless they point at localhost.

        Raises:
            ValueError: On the first invalid origin
        """
        if not origins:
            raise ValueError("ALLOWED_ORIGINS needs at least one origin")

        production = info.data.get("APP_ENV") == "production"
        cleaned = []
        for origin in (o.strip() for o in origins):
            if "*" in origin:
                raise ValueError(f"CORS origin '{origin}' contains a wildcard; list exact origins")

            parsed = urlparse(origin)
            if not parsed.scheme or not parsed.netloc:
                raise ValueError(f"CORS origin '{origin}' must look like scheme://host")

            local = parsed.hostname in ("localhost", "127.0.0.1")
            if production and parsed.scheme != "https" and not local:
                raise ValueError(f"CORS origin '{origin}' must use https in production")

            cleaned.append(origin)
        return cleaned


settings = Settings()  # type: ignore

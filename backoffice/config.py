from __future__ import annotations

import sys
from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_JWT_SECRET = "change-me-in-production-use-long-random-string"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BACKOFFICE_")

    # Database
    database_url: str = "sqlite:///./backoffice.db"
    log_sql: bool = False

    # Server
    environment: str = "development"
    log_level: str = "info"
    log_format: str = "json"
    allow_cors_origins: List[str] = ["*"]

    # Auth
    jwt_secret: str = _DEFAULT_JWT_SECRET
    jwt_expire_minutes: int = 480  # 8 hours
    admin_email: str = "admin@backoffice.local"
    admin_password: str = "changeme"
    admin_name: str = "Back-office Admin"

    # Edge guard
    login_path: str = "/api/auth/login"
    rate_limit_window_seconds: int = 60
    rate_limit_max_requests: int = 10
    login_max_attempts: int = 5
    login_lockout_seconds: int = 15 * 60
    session_idle_timeout_seconds: int = 30 * 60
    sweep_interval_seconds: int = 60
    # Auth callbacks that carry their own protection; matched exactly.
    csrf_exempt_paths: List[str] = ["/auth/v1/callback", "/auth/v1/token"]
    static_path_prefixes: List[str] = ["/static/", "/_next/", "/favicon.ico"]
    # X-Forwarded-For is client-controlled; enable only behind a proxy that rewrites it.
    trust_forwarded_for: bool = False

    # Data API rate limiting (slowapi)
    api_rate_limit: str = "120/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v: str, info) -> str:
        """Refuse to start in production with the default JWT secret."""
        env = info.data.get("environment", "development")
        if env != "development" and v == _DEFAULT_JWT_SECRET:
            print(
                "\nFATAL: BACKOFFICE_JWT_SECRET is set to the default value.\n"
                "   Set BACKOFFICE_JWT_SECRET to a strong random string before "
                "running in production.\n",
                file=sys.stderr,
            )
            raise ValueError(
                "JWT secret must be changed from default in non-development environments. "
                "Set BACKOFFICE_JWT_SECRET env var."
            )
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()


# Module-level singleton for convenience
settings = get_settings()

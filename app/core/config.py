# /app/core/config.py

"""
Central configuration for the school administration backend.

Values are read from the process environment, optionally pre-populated from a
local `.env` file via python-dotenv. Every other module imports the shared
`settings` instance instead of calling `os.getenv` on its own.
"""

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()

_DEV_ACCESS_SECRET = "dev-access-secret-change-me"
_DEV_REFRESH_SECRET = "dev-refresh-secret-change-me"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}")


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings:
    def __init__(self):
        self.ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./school_admin.db")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        # --- Tokens ---
        self.JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET", _DEV_ACCESS_SECRET)
        self.JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", _DEV_REFRESH_SECRET)
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.ACCESS_TOKEN_EXPIRE_MINUTES = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24)
        self.REFRESH_TOKEN_EXPIRE_DAYS = _env_int("REFRESH_TOKEN_EXPIRE_DAYS", 7)
        self.BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

        # --- Consistency layer ---
        self.TRANSACTION_MAX_ATTEMPTS = _env_int("TRANSACTION_MAX_ATTEMPTS", 3)
        # Upper bound of the first back-off; later retries grow exponentially up to one second.
        self.TRANSACTION_RETRY_WAIT_MS = _env_int("TRANSACTION_RETRY_WAIT_MS", 50)

        # --- Cache ---
        self.CACHE_DEFAULT_TTL_SECONDS = _env_int("CACHE_DEFAULT_TTL_SECONDS", 60)
        self.CACHE_MAX_ENTRIES = _env_int("CACHE_MAX_ENTRIES", 500)
        self.DASHBOARD_STATS_TTL_SECONDS = _env_int("DASHBOARD_STATS_TTL_SECONDS", 60)
        self.USER_OVERVIEW_TTL_SECONDS = _env_int("USER_OVERVIEW_TTL_SECONDS", 30)

        # --- Tenancy ---
        self.TRIAL_PERIOD_DAYS = _env_int("TRIAL_PERIOD_DAYS", 30)

        self.CORS_ALLOW_ORIGINS = _env_list("CORS_ALLOW_ORIGINS", "*")
        # Development convenience; migrations own the schema everywhere else.
        self.AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "true" if self.ENVIRONMENT == "development" else "false").lower() == "true"

        if self.is_production:
            if self.JWT_ACCESS_SECRET == _DEV_ACCESS_SECRET or self.JWT_REFRESH_SECRET == _DEV_REFRESH_SECRET:
                raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be set in production.")

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()

# File: booking_progress/core/config.py
"""
Settings for the booking progress service.

Values come from the environment (or a ``.env`` file next to the process)
and are validated once at import; the rest of the code reads the
module-level ``settings``.
"""

import json
import secrets
from typing import Annotated, Any, List, Optional, Union

from pydantic import AnyHttpUrl, validator
from pydantic_settings import BaseSettings, NoDecode

from booking_progress.db.models.enums import ProgressMode

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """
    Environment-driven configuration.

    Names are case sensitive and match the environment variables.
    """

    PROJECT_NAME: str = "Booking Progress"
    API_V1_STR: str = "/api/v1"

    ENVIRONMENT: str = "development"
    PRODUCTION: bool = False
    LOG_LEVEL: str = "INFO"

    # Tokens are minted by the platform's auth service; this service only
    # needs the shared secret to verify them.
    SECRET_KEY: str = secrets.token_urlsafe(32)
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # JSON list or comma-separated string, parsed by split_cors_origins
    BACKEND_CORS_ORIGINS: Annotated[List[Union[AnyHttpUrl, str]], NoDecode] = []

    # Database
    DATABASE_PATH: str = "booking_progress.db"
    DATABASE_URL: Optional[str] = None
    DB_ECHO: bool = False
    # Create missing tables at startup (local runs; migrations are owned elsewhere)
    CREATE_TABLES_ON_STARTUP: bool = True

    # ================================
    # Progress engine
    # ================================

    # completion_ratio: milestone % = completed tasks / total tasks
    # task_average: milestone % = mean of task progress_percentage values
    PROGRESS_MODE: ProgressMode = ProgressMode.COMPLETION_RATIO

    # Extra attempts after a version conflict before surfacing it to the caller
    RECOMPUTE_MAX_RETRIES: int = 1

    @validator("BACKEND_CORS_ORIGINS", pre=True)
    def split_cors_origins(cls, v: Any) -> List[str]:
        if not v:
            return []
        if isinstance(v, str):
            if v.lstrip().startswith("["):
                return json.loads(v)
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @validator("LOG_LEVEL")
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        return level if level in LOG_LEVELS else "INFO"

    @validator("DATABASE_URL", pre=True, always=True)
    def default_database_url(cls, v: Optional[str], values: dict) -> str:
        """Fall back to a SQLite file at DATABASE_PATH."""
        if v:
            return v
        return f"sqlite:///{values.get('DATABASE_PATH') or 'booking_progress.db'}"

    @validator("RECOMPUTE_MAX_RETRIES")
    def bound_max_retries(cls, v: int) -> int:
        """Keep the retry bound small and non-negative."""
        return max(0, min(v, 5))

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List, Any, Optional
import json
import re

from schemas import PHONE_PATTERN


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Application
    APP_NAME: str = "School Admin API"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    PORT: int = 8000

    # Database
    DATABASE_URL: Optional[str] = None
    DATABASE_NAME: str = "school_admin"

    # CORS - comma separated or JSON list
    CORS_ORIGINS: Any = ["*"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # Sessions
    SESSION_TTL_HOURS: int = 12
    BCRYPT_ROUNDS: int = 12

    # Seeded admin (only used when the user collection is empty)
    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None
    ADMIN_PHONE: Optional[str] = None

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, v: Any) -> List[str]:
        return parse_cors_origins(v)

    @field_validator("ADMIN_PHONE")
    @classmethod
    def _admin_phone(cls, v: Optional[str]) -> Optional[str]:
        if v and not re.match(PHONE_PATTERN, v):
            raise ValueError("ADMIN_PHONE must be 9-15 digits with no plus sign")
        return v or None


settings = Settings()

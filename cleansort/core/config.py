from typing import Annotated, List, Optional
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import field_validator, model_validator
from enum import Enum
import json
import os


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    # Environment Configuration
    ENVIRONMENT: Environment = Environment.DEVELOPMENT

    # Project Information
    PROJECT_NAME: str = "CleanSort Backend"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    # Server settings
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # Database (any SQLAlchemy URL; PostgreSQL in production, SQLite locally)
    DATABASE_URL: str = "sqlite:///./cleansort.db"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = "server.log"

    # OpenAI (receipt OCR)
    OPENAI_API_KEY: Optional[str] = None
    OCR_MODEL: str = "gpt-4o-mini"
    OCR_MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # CORS (comma-separated or JSON list in env)
    ALLOWED_ORIGINS: Annotated[List[str], NoDecode] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]

    # API Security
    VALID_API_KEYS: Annotated[List[str], NoDecode] = []
    REQUIRE_API_KEY: bool = False

    @field_validator("ALLOWED_ORIGINS", "VALID_API_KEYS", mode="before")
    @classmethod
    def split_list(cls, v):
        # Accept JSON arrays and comma-separated strings from the environment
        if isinstance(v, str):
            stripped = v.strip()
            if stripped.startswith("["):
                return json.loads(stripped)
            return [part.strip() for part in stripped.split(",") if part.strip()]
        return v

    @model_validator(mode="after")
    def _finalize_and_validate(self) -> "Settings":
        if self.REQUIRE_API_KEY and not self.VALID_API_KEYS:
            raise ValueError("REQUIRE_API_KEY is set but VALID_API_KEYS is empty")
        if self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)
        return self

    # Environment-specific properties
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == Environment.DEVELOPMENT

    @property
    def log_level(self) -> int:
        import logging
        return getattr(logging, self.LOG_LEVEL.upper(), logging.INFO)

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=os.getenv("CLEANSORT_ENV_FILE", ".env"),
        extra="ignore",
    )


settings = Settings()

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


PACKAGE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration
    # Required: connection string for the chat database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    # PostgreSQL only, 0 disables
    DB_STATEMENT_TIMEOUT_MS: int = 30000
    CREATE_SCHEMA: bool = False

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Audit log view
    AUDIT_TAIL_LIMIT: int = 50

    # Rendering
    TEMPLATES_DIR: Path = PACKAGE_DIR / "templates"
    STATIC_DIR: Path = PACKAGE_DIR / "static"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    @field_validator("DATABASE_URL")
    @classmethod
    def normalize_postgres_scheme(cls, v: str) -> str:
        """SQLAlchemy only understands the postgresql:// scheme."""
        if v.startswith("postgres://"):
            return "postgresql://" + v[len("postgres://"):]
        return v


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()

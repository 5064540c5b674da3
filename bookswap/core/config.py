"""Application configuration using Pydantic Settings.

Environment variables are loaded from .env files and system environment.
Password policy and hashing cost are tunable here without code changes.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """BookSwap settings.

    All settings can be overridden via environment variables.
    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "BookSwap"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./bookswap.db"

    # Credentials
    BCRYPT_ROUNDS: int = 10
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_SPECIAL_CHARACTERS: str = "#?!@$%^&*-_"

    @field_validator("BCRYPT_ROUNDS")
    @classmethod
    def check_bcrypt_rounds(cls, v: int) -> int:
        """bcrypt only accepts log2 cost factors between 4 and 31."""
        if not 4 <= v <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return v

    @field_validator("PASSWORD_SPECIAL_CHARACTERS")
    @classmethod
    def check_special_characters(cls, v: str) -> str:
        if not v:
            raise ValueError("PASSWORD_SPECIAL_CHARACTERS must not be empty")
        return v

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None  # Defaults to logs/bookswap.log
    LOG_JSON_FORMAT: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


# Global settings instance
settings = get_settings()

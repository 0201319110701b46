from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


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

    # Storage location
    DATABASE_URL: str = "sqlite:///./portfolio.db"

    # Admin identity - required from .env
    ADMIN_USERNAME: str
    ADMIN_PASSWORD: str

    # Session cookie signing key - required from .env
    SESSION_SECRET: str
    SESSION_TTL_MINUTES: int = 1440

    # Server
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # Static assets
    STATIC_DIR: str = "frontend"
    RESUME_PATH: str = "frontend/resume.pdf"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()

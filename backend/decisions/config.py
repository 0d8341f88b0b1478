"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    APP_NAME: str = "Group Decisions"
    DATABASE_URL: str = "sqlite:///./group_decisions.db"
    CORS_ORIGINS: str = "http://localhost:8081"
    LOG_LEVEL: str = "INFO"
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    class Config:
        env_file = ".env"


settings = Settings()

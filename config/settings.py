from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------
class Settings(BaseSettings):
    """
    Application settings managed by Pydantic.
    Reads from environment variables and/or .env file.
    """
    # Project Info
    ENVIRONMENT: str = "development"
    ALLOWED_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./fluent_rest.db"
    SQL_ECHO: bool = False

    # Resources
    DEFAULT_PAGE_SIZE: int = 100

    # Versioning
    API_VERSION: Optional[str] = None
    API_VERSION_HEADER: str = "API-Version"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Config to read from .env file if available
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
        )

settings = Settings() # type: ignore

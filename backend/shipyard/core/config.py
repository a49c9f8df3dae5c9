"""
Application configuration using Pydantic Settings.
"""
from typing import List
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Application
    APP_NAME: str = "Shipyard"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "info"
    DEBUG: bool = False

    # Database Schema
    DB_SCHEMA: str = "shipyard"

    # Database
    DATABASE_URL: str

    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost"

    # Filesystem
    PROJECTS_PATH: str = "./projects"
    LOGS_PATH: str = "./logs"

    # Port allocation (inclusive range)
    BASE_PROJECT_PORT: int = 4000
    MAX_PROJECT_PORT: int = 5000
    PUBLIC_HOST: str = "localhost"

    # Process supervision
    RESTART_GRACE_SECONDS: float = 2.0
    LINUX_KILL_GRACE_SECONDS: float = 3.0  # SIGTERM -> SIGKILL on Linux
    POSIX_KILL_GRACE_SECONDS: float = 5.0  # SIGTERM -> SIGKILL on macOS / other Unix
    RECONCILE_INTERVAL_SECONDS: int = 60

    # Log streaming
    LOG_SUBSCRIBER_QUEUE_SIZE: int = 1000

    # Project detection
    SCAN_MAX_DEPTH: int = 2

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("LOG_SUBSCRIBER_QUEUE_SIZE")
    @classmethod
    def validate_queue_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("LOG_SUBSCRIBER_QUEUE_SIZE must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_port_range(self) -> "Settings":
        if self.BASE_PROJECT_PORT > self.MAX_PROJECT_PORT:
            raise ValueError(
                f"BASE_PROJECT_PORT ({self.BASE_PROJECT_PORT}) must not exceed "
                f"MAX_PROJECT_PORT ({self.MAX_PROJECT_PORT})"
            )
        return self

    def get_cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


settings = Settings()

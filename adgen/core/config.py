"""
Application Configuration

Centralized settings management using Pydantic Settings.
Supports environment variables and .env files.
"""

from pydantic_settings import BaseSettings
from typing import Optional


DEFAULT_COMPOSE_PROMPT = (
    "Keep the model's pose, facial expression and clothing exactly as they are, "
    "and replace the product in the model's hands with the provided product so it looks natural."
)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # ==========================================================================
    # App Settings
    # ==========================================================================
    APP_NAME: str = "Ad Generation Pipeline"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, PROD
    DEBUG: bool = True

    # ==========================================================================
    # Backend API
    # ==========================================================================
    API_BASE_URL: str = "http://localhost:8080/api"
    API_TOKEN: Optional[str] = None  # Used by scripts; HTTP callers forward their own
    BACKEND_TIMEOUT_SECONDS: float = 30.0
    UPLOAD_TIMEOUT_SECONDS: float = 60.0

    # ==========================================================================
    # Pipeline Settings
    # ==========================================================================
    # Worst case wait per job is interval * attempts (~60s)
    JOB_POLL_INTERVAL_SECONDS: float = 2.0
    JOB_POLL_MAX_ATTEMPTS: int = 30

    COMPOSE_BASE_PROMPT: str = DEFAULT_COMPOSE_PROMPT
    MAX_IMAGE_SIZE_BYTES: int = 10485760  # 10MB
    MAX_PROMPT_SUFFIX_LENGTH: int = 500

    # ==========================================================================
    # Points
    # ==========================================================================
    POINT_REFERER_TYPE: str = "MODEL"

    # ==========================================================================
    # Logging Settings
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT_JSON: bool = True  # JSON for production, console for development

    # ==========================================================================
    # CORS Settings
    # ==========================================================================
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost:8000"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()

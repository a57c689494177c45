"""
Configuration management for the application.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).parent / ".env"
if env_path.exists():
    load_dotenv(env_path)
else:
    # Try loading from current directory as fallback
    load_dotenv()


class Config:
    """Application configuration."""

    APP_NAME: str = os.getenv("APP_NAME", "Accounts API")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./accounts.db")
    DB_ECHO: bool = os.getenv("DB_ECHO", "false").strip().lower() in {"1", "true", "yes", "on"}
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))

    # API configuration
    CORS_ORIGINS: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

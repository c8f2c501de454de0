"""Configuration management for the Donation Hub backend"""

import os
import secrets
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration, read once from the environment."""

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./donation_hub.db")
    DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", 10))
    DB_TIMEOUT_SECONDS = int(os.getenv("DB_TIMEOUT_SECONDS", 30))

    # JWT Configuration
    SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_urlsafe(32))
    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", 24))
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 10))

    # Session cookie
    TOKEN_COOKIE_NAME = "token"
    COOKIE_SECURE = _env_bool("COOKIE_SECURE", "false")

    # Bootstrap admin, created on startup when both email and password are set
    DEFAULT_ADMIN_NAME = os.getenv("DEFAULT_ADMIN_NAME", "Administrator")
    DEFAULT_ADMIN_EMAIL = os.getenv("DEFAULT_ADMIN_EMAIL")
    DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD")

    # HTTP
    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
        if origin.strip()
    ]
    LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "5/minute")
    RATE_LIMIT_ENABLED = _env_bool("RATE_LIMIT_ENABLED", "true")

    # Uploads
    STATIC_DIR = Path(os.getenv("STATIC_DIR", "public"))
    MAX_UPLOAD_SIZE = int(os.getenv("MAX_UPLOAD_SIZE", 5 * 1024 * 1024))

    # Server
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", 8000))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

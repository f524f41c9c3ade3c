"""
Application Configuration Settings
Helpdesk Sign-In and Credential Sync Service
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Application
    APP_NAME: str = "DeskAuth"
    APP_VERSION: str = "1.0.0"
    SECRET_KEY: str = "change-this-in-production"  # Keys reset-token digests

    # Database
    DATABASE_URL: str = "sqlite:///./deskauth.db"

    # Front-end used to build user-facing links (login redirect, password reset)
    FRONTEND_URL: str = "http://localhost:3000"

    # Session credentials
    JWT_SECRET_KEY: str = "change-this-jwt-secret"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Account lockout
    MAX_LOGIN_ATTEMPTS: int = 5
    ACCOUNT_LOCKOUT_MINUTES: int = 30

    # Multi-factor authentication
    MFA_TOKEN_EXPIRE_MINUTES: int = 5
    MFA_ISSUER: str = "DeskAuth"

    # Single sign-on tokens
    SSO_TOKEN_EXPIRE_MINUTES: int = 5

    # Password reset
    RESET_PASSWORD_WITHIN_HOURS: int = 6

    # External identity system (best-effort credential mirroring)
    EXTERNAL_IDENTITY_ENABLED: bool = True
    EXTERNAL_IDENTITY_BASE_URL: str = ""  # e.g., https://identity.example.com/api
    EXTERNAL_IDENTITY_TIMEOUT_SECONDS: float = 5.0  # Applied to connect and read
    EXTERNAL_IDENTITY_DEFAULT_ROLE: str = "USER"

    # Security
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]
    BCRYPT_ROUNDS: int = 12

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

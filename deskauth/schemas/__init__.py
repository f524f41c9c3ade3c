"""Pydantic schemas for request/response validation."""

from deskauth.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MfaRequiredResponse,
    ErrorResponse,
    LogoutResponse,
    PasswordResetRequest,
    PasswordResetCompletion,
    MessageResponse,
    InvalidResetTokenResponse,
    ExternalIdentityTokenResponse,
    UserInfo,
)

__all__ = [
    "LoginRequest",
    "LoginResponse",
    "MfaRequiredResponse",
    "ErrorResponse",
    "LogoutResponse",
    "PasswordResetRequest",
    "PasswordResetCompletion",
    "MessageResponse",
    "InvalidResetTokenResponse",
    "ExternalIdentityTokenResponse",
    "UserInfo",
]

"""Database models for DeskAuth."""

from deskauth.models.user import User
from deskauth.models.mfa_challenge import MfaChallenge
from deskauth.models.user_session import UserSession

__all__ = [
    "User",
    "MfaChallenge",
    "UserSession",
]

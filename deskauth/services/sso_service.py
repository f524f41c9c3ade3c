"""Single-use SSO bearer tokens stored per user."""

import hmac
from datetime import timedelta
from typing import Optional
from sqlalchemy.orm import Session
import logging

from deskauth.config import settings
from deskauth.models.user import User
from deskauth.utils.timezone import utcnow, is_expired
from deskauth.utils.tokens import generate_token, sha256_digest

logger = logging.getLogger(__name__)


class SsoTokenValidator:
    """Issues, validates and invalidates a user's SSO auth token."""

    def __init__(self, db: Session):
        self.db = db

    def generate(self, user: User) -> str:
        """Issue a fresh token for the user, replacing any previous one."""
        token = generate_token()
        user.sso_auth_token = sha256_digest(token)
        user.sso_auth_token_expires_at = utcnow() + timedelta(minutes=settings.SSO_TOKEN_EXPIRE_MINUTES)
        self.db.commit()
        logger.info(f"SSO auth token generated for {user.email}")
        return token

    def is_valid(self, user: User, token: Optional[str]) -> bool:
        """True if the token matches the user's stored, unexpired token."""
        if not token or not user.sso_auth_token:
            return False
        if is_expired(user.sso_auth_token_expires_at):
            return False
        return hmac.compare_digest(user.sso_auth_token, sha256_digest(token))

    def invalidate(self, user: User, token: Optional[str]) -> None:
        """Clear the stored token if it is this one. Safe to repeat."""
        if not token:
            return
        self.db.query(User).filter(
            User.id == user.id,
            User.sso_auth_token == sha256_digest(token)
        ).update({
            User.sso_auth_token: None,
            User.sso_auth_token_expires_at: None
        }, synchronize_session=False)
        self.db.commit()

    def consume(self, user: User, token: Optional[str]) -> bool:
        """Validate and invalidate in one conditional update.

        Committed before the caller signs the user in. At most one caller
        gets True for a given token.
        """
        if not token:
            return False

        consumed = self.db.query(User).filter(
            User.id == user.id,
            User.sso_auth_token == sha256_digest(token),
            User.sso_auth_token_expires_at > utcnow()
        ).update({
            User.sso_auth_token: None,
            User.sso_auth_token_expires_at: None
        }, synchronize_session=False)
        self.db.commit()

        if consumed != 1:
            logger.warning(f"Invalid or reused SSO auth token for {user.email}")
            return False

        logger.info(f"SSO auth token consumed for {user.email}")
        return True

"""Password reset initiation and completion."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Union
from urllib.parse import urlencode
from sqlalchemy.orm import Session
import logging

from deskauth.config import settings
from deskauth.exceptions import InvalidToken, PasswordMismatch
from deskauth.models.user import User
from deskauth.services.external_identity import ExternalIdentitySync
from deskauth.services.session_service import IssuedSession, SessionService
from deskauth.services.user_store import UserStore
from deskauth.utils.timezone import utcnow
from deskauth.utils.tokens import generate_token, keyed_digest

logger = logging.getLogger(__name__)

RESET_TOKEN_PURPOSE = "reset_password_token"


def digest_reset_token(raw_token: str) -> str:
    return keyed_digest(RESET_TOKEN_PURPOSE, raw_token)


class ResetInstructionSender:
    """Delivers reset links. The default only logs; plug in a mailer in production."""

    def send(self, user: User, reset_url: str) -> None:
        logger.info(f"Reset password instructions prepared for {user.email}")


@dataclass
class ResetRequested:
    user: User


@dataclass
class ResetNotFound:
    email: str


@dataclass
class CompletedReset:
    user: User
    session: IssuedSession


class PasswordResetService:
    """Issues reset tokens and applies password resets."""

    def __init__(
        self,
        db: Session,
        users: Optional[UserStore] = None,
        sessions: Optional[SessionService] = None,
        external_sync: Optional[ExternalIdentitySync] = None,
        sender: Optional[ResetInstructionSender] = None
    ):
        self.db = db
        self.users = users if users is not None else UserStore(db)
        self.sessions = sessions if sessions is not None else SessionService(db)
        self.external_sync = external_sync if external_sync is not None else ExternalIdentitySync()
        self.sender = sender if sender is not None else ResetInstructionSender()

    def request_reset(self, email: Optional[str]) -> Union[ResetRequested, ResetNotFound]:
        """Send reset instructions if the email belongs to a user.

        Unlike sign-in, this reports unknown emails explicitly.
        """
        user = self.users.find_by_email(email)
        if user is None:
            logger.info(f"Password reset requested for unknown email: {email!r}")
            return ResetNotFound(email=email or "")

        raw_token = generate_token(24)
        user.reset_password_token = digest_reset_token(raw_token)
        user.reset_password_sent_at = utcnow()
        self.db.commit()

        self.sender.send(user, build_reset_url(raw_token))
        return ResetRequested(user=user)

    def complete_reset(self, raw_token: Optional[str], password: str, password_confirmation: str) -> CompletedReset:
        """Apply a reset. Raises InvalidToken or PasswordMismatch without touching the user."""
        user = self._find_resettable_user(raw_token)

        if password != password_confirmation:
            raise PasswordMismatch()

        # Single conditional write: the token is spent and the password set together
        now = utcnow()
        window = timedelta(hours=settings.RESET_PASSWORD_WITHIN_HOURS)
        updated = self.db.query(User).filter(
            User.id == user.id,
            User.reset_password_token == digest_reset_token(raw_token),
            User.reset_password_sent_at > now - window
        ).update({
            User.hashed_password: self.users.hash_password(password),
            User.confirmed_at: user.confirmed_at or now,
            User.reset_password_token: None,
            User.confirmation_token: None,
            User.reset_password_sent_at: None,
            User.failed_login_attempts: 0,
            User.account_locked_until: None
        }, synchronize_session=False)

        if updated != 1:
            self.db.rollback()
            logger.warning(f"Password reset token for {user.email} was used by another request")
            raise InvalidToken("Invalid token")

        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Password reset completed for {user.email}")

        session = self.sessions.issue(user)
        self.external_sync.dispatch_password_sync(user.email, password)
        return CompletedReset(user=user, session=session)

    def _find_resettable_user(self, raw_token: Optional[str]) -> User:
        if not raw_token:
            raise InvalidToken("Invalid token")

        user = self.users.find_by_reset_password_token(digest_reset_token(raw_token))
        if user is None:
            logger.warning("Password reset attempted with unknown token")
            raise InvalidToken("Invalid token")

        window = timedelta(hours=settings.RESET_PASSWORD_WITHIN_HOURS)
        if user.reset_password_sent_at is None or user.reset_password_sent_at + window < utcnow():
            logger.warning(f"Expired password reset token for {user.email}")
            raise InvalidToken("Invalid token")

        return user


def build_reset_url(raw_token: str) -> str:
    """Front-end link carrying the raw reset token."""
    query = urlencode({"reset_password_token": raw_token})
    return f"{settings.FRONTEND_URL.rstrip('/')}/app/auth/password/edit?{query}"

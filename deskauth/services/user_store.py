"""User lookup and password storage."""

from datetime import timedelta
from typing import Optional
from sqlalchemy.orm import Session
from passlib.context import CryptContext
import logging

from deskauth.config import settings
from deskauth.models.user import User
from deskauth.utils.timezone import utcnow

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS
)

# Verified against when no user matched, so unknown emails cost the same time
_DUMMY_HASH = pwd_context.hash("deskauth-dummy-password")


def normalize_email(email: Optional[str]) -> str:
    """Trim and lowercase an email; None becomes an empty string."""
    return (email or "").strip().lower()


class UserStore:
    """Persistence boundary for users."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_email(self, email: Optional[str]) -> Optional[User]:
        """Find a user by email, ignoring case and surrounding whitespace."""
        normalized = normalize_email(email)
        if not normalized:
            return None
        return self.db.query(User).filter(User.email == normalized).first()

    def find_by_reset_password_token(self, digest: str) -> Optional[User]:
        return self.db.query(User).filter(User.reset_password_token == digest).first()

    def verify_password(self, user: User, password: str) -> bool:
        """Verify a plain password against the user's bcrypt hash."""
        if not user.hashed_password or not password:
            return False
        return pwd_context.verify(password, user.hashed_password)

    def perform_dummy_verification(self, password: str) -> None:
        """Spend one hash verification without a user."""
        pwd_context.verify(password or "", _DUMMY_HASH)

    def record_failed_login(self, user: User) -> None:
        """Count a wrong password and lock the account once the limit is reached."""
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

        if user.failed_login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
            user.account_locked_until = utcnow() + timedelta(
                minutes=settings.ACCOUNT_LOCKOUT_MINUTES
            )
            logger.warning(f"Account locked due to failed attempts: {user.email}")

        self.db.commit()

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using bcrypt."""
        return pwd_context.hash(password)

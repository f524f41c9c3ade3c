"""User model for authentication."""

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Index, Text
from sqlalchemy.sql import func
from deskauth.database import Base
from deskauth.utils.timezone import utcnow


class User(Base):
    """User model for helpdesk agents and administrators."""

    __tablename__ = "users"

    id = Column(String(100), primary_key=True)
    email = Column(String(255), unique=True, nullable=False)  # Stored trimmed and lowercase
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)

    # Status
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime, nullable=True)
    sign_in_count = Column(Integer, default=0)

    # Confirmation
    confirmed_at = Column(DateTime, nullable=True)
    confirmation_token = Column(String(255), nullable=True)

    # Password
    hashed_password = Column(String(255), nullable=True)  # bcrypt hash
    reset_password_token = Column(String(255), unique=True, nullable=True)  # HMAC digest of the raw token
    reset_password_sent_at = Column(DateTime, nullable=True)

    # Security
    failed_login_attempts = Column(Integer, default=0)
    account_locked_until = Column(DateTime, nullable=True)

    # Multi-factor authentication
    mfa_enabled = Column(Boolean, default=False)
    otp_secret = Column(String(64), nullable=True)  # Base32 TOTP secret
    otp_backup_codes = Column(Text, nullable=True)  # JSON array of SHA-256 digests

    # Single sign-on (single-use token, digest only)
    sso_auth_token = Column(String(128), nullable=True)
    sso_auth_token_expires_at = Column(DateTime, nullable=True)

    # Audit
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_email", "email"),
        Index("idx_reset_password_token", "reset_password_token"),
    )

    @property
    def is_confirmed(self) -> bool:
        return self.confirmed_at is not None

    def is_locked(self) -> bool:
        """Check if the account is inside a lockout window."""
        return bool(self.account_locked_until and self.account_locked_until > utcnow())

    @property
    def active_for_authentication(self) -> bool:
        """Active, confirmed and not locked."""
        return bool(self.is_active) and self.is_confirmed and not self.is_locked()

    def confirm(self):
        """Mark the account confirmed if it is not already."""
        if self.confirmed_at is None:
            self.confirmed_at = utcnow()

    @property
    def available_name(self) -> str:
        """Name shown to other systems: display name, then name."""
        return self.display_name or self.name

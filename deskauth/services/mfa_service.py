"""
Multi-factor authentication.

MfaCoordinator issues and verifies challenge tokens and decides pass/fail.
Code checking is delegated to an MfaProvider (the MFA service boundary);
TotpMfaProvider is the bundled implementation backed by pyotp.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session
import json
import logging
import secrets

import pyotp

from deskauth.config import settings
from deskauth.exceptions import InvalidToken
from deskauth.models.mfa_challenge import MfaChallenge
from deskauth.models.user import User
from deskauth.utils.timezone import utcnow, is_expired
from deskauth.utils.tokens import generate_token, sha256_digest

logger = logging.getLogger(__name__)

BACKUP_CODES_COUNT = 10


class MfaProvider:
    """Checks one-time and backup codes for a user."""

    def verify_otp(self, user: User, code: str) -> bool:
        raise NotImplementedError

    def verify_backup_code(self, user: User, code: str) -> bool:
        raise NotImplementedError


class TotpMfaProvider(MfaProvider):
    """TOTP codes via pyotp; backup codes stored as SHA-256 digests on the user."""

    def __init__(self, db: Session, valid_window: int = 1):
        self.db = db
        self.valid_window = valid_window

    def verify_otp(self, user: User, code: str) -> bool:
        if not user.otp_secret:
            logger.warning(f"MFA enabled for {user.email} but no OTP secret is set")
            return False
        return pyotp.TOTP(user.otp_secret).verify(code.strip(), valid_window=self.valid_window)

    def verify_backup_code(self, user: User, code: str) -> bool:
        """Verify a backup code and remove it from the user.

        The removal is left uncommitted; it is written together with the
        challenge completion and discarded if that fails.
        """
        digests = json.loads(user.otp_backup_codes or "[]")
        digest = self.hash_backup_code(code)
        if digest not in digests:
            return False

        digests.remove(digest)
        user.otp_backup_codes = json.dumps(digests)
        logger.info(f"Backup code accepted for {user.email}; {len(digests)} remaining")
        return True

    @staticmethod
    def generate_secret() -> str:
        return pyotp.random_base32()

    @staticmethod
    def provisioning_uri(user: User) -> str:
        """otpauth:// URI for authenticator apps."""
        return pyotp.TOTP(user.otp_secret).provisioning_uri(name=user.email, issuer_name=settings.MFA_ISSUER)

    @staticmethod
    def generate_backup_codes(count: int = BACKUP_CODES_COUNT) -> List[str]:
        """Generate codes in XXXX-XXXX format (lowercase hex)."""
        return [f"{secrets.token_hex(2)}-{secrets.token_hex(2)}" for _ in range(count)]

    @staticmethod
    def hash_backup_code(code: str) -> str:
        return sha256_digest(code.strip().lower())

    def set_backup_codes(self, user: User, codes: List[str]) -> None:
        """Store digests of the given codes, replacing any existing ones. Caller commits."""
        user.otp_backup_codes = json.dumps([self.hash_backup_code(c) for c in codes])


@dataclass
class IssuedChallenge:
    """Raw challenge token as handed to the client."""

    token: str
    user_id: str
    expires_at: datetime


class MfaCoordinator:
    """Issues MFA challenge tokens and verifies second factors."""

    def __init__(self, db: Session, provider: Optional[MfaProvider] = None):
        self.db = db
        self.provider = provider if provider is not None else TotpMfaProvider(db)

    def issue_challenge(self, user: User) -> IssuedChallenge:
        """Create a short-lived challenge bound to the user."""
        token = generate_token()
        expires_at = utcnow() + timedelta(minutes=settings.MFA_TOKEN_EXPIRE_MINUTES)

        self.db.add(MfaChallenge(
            token_digest=sha256_digest(token),
            user_id=user.id,
            issued_at=utcnow(),
            expires_at=expires_at
        ))
        self.db.commit()

        logger.info(f"MFA challenge issued for {user.email}")
        return IssuedChallenge(token=token, user_id=user.id, expires_at=expires_at)

    def _find_challenge(self, token: Optional[str]) -> Optional[MfaChallenge]:
        if not token:
            return None
        return self.db.query(MfaChallenge).filter(
            MfaChallenge.token_digest == sha256_digest(token)
        ).first()

    def verify_token(self, token: Optional[str]) -> User:
        """Resolve a challenge token to its user. Raises InvalidToken if unknown, expired or used."""
        challenge = self._find_challenge(token)

        if challenge is None:
            logger.warning("MFA verification with unknown token")
            raise InvalidToken()
        if challenge.consumed_at is not None:
            logger.warning(f"MFA token reuse attempted for user {challenge.user_id}")
            raise InvalidToken()
        if is_expired(challenge.expires_at):
            logger.warning(f"Expired MFA token for user {challenge.user_id}")
            raise InvalidToken()

        user = self.db.query(User).filter(User.id == challenge.user_id).first()
        if user is None:
            raise InvalidToken()
        return user

    def authenticate(self, user: User, otp_code: Optional[str] = None, backup_code: Optional[str] = None) -> bool:
        """Check the second factor. Wrong code and provider failure both return False."""
        try:
            if otp_code:
                valid = self.provider.verify_otp(user, otp_code)
                method = "otp"
            elif backup_code:
                valid = self.provider.verify_backup_code(user, backup_code)
                method = "backup_code"
            else:
                logger.warning(f"MFA verification for {user.email} without a code")
                return False
        except Exception as e:
            logger.error(f"MFA service unavailable while verifying {user.email}: {e}", exc_info=True)
            return False

        if not valid:
            logger.warning(f"Invalid MFA {method} for {user.email}")
        return valid

    def complete_challenge(self, token: str) -> bool:
        """Mark the challenge used, committing any backup code consumed with it.

        Returns False and rolls back if another request got there first.
        """
        now = utcnow()
        updated = self.db.query(MfaChallenge).filter(
            MfaChallenge.token_digest == sha256_digest(token),
            MfaChallenge.consumed_at.is_(None),
            MfaChallenge.expires_at > now
        ).update({MfaChallenge.consumed_at: now}, synchronize_session=False)

        if updated != 1:
            self.db.rollback()
            logger.warning("MFA challenge was completed by another request")
            return False

        self.db.commit()
        return True

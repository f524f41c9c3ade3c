"""Authentication orchestration for sign-in requests."""

from dataclasses import dataclass
from typing import Optional, Union
from sqlalchemy.orm import Session
import logging

from deskauth.exceptions import (
    AuthError,
    InvalidCredentials,
    InvalidToken,
    InvalidCode,
    AccountInactive,
)
from deskauth.models.user import User
from deskauth.schemas.auth import LoginRequest
from deskauth.services.external_identity import ExternalIdentitySync
from deskauth.services.mfa_service import IssuedChallenge, MfaCoordinator
from deskauth.services.session_service import IssuedSession, SessionService
from deskauth.services.sso_service import SsoTokenValidator
from deskauth.services.user_store import UserStore

logger = logging.getLogger(__name__)


# Request modes, exactly one per request

@dataclass(frozen=True)
class MfaVerification:
    mfa_token: str
    otp_code: Optional[str] = None
    backup_code: Optional[str] = None


@dataclass(frozen=True)
class SsoExchange:
    email: Optional[str]
    sso_auth_token: str
    password: Optional[str] = None


@dataclass(frozen=True)
class PasswordLogin:
    email: Optional[str]
    password: Optional[str]


LoginMode = Union[MfaVerification, SsoExchange, PasswordLogin]


def classify_login(request: LoginRequest) -> LoginMode:
    """Pick the request mode. Precedence: MFA verification, SSO exchange, password."""
    if request.mfa_token:
        return MfaVerification(
            mfa_token=request.mfa_token,
            otp_code=request.otp_code,
            backup_code=request.backup_code
        )
    if request.sso_auth_token:
        return SsoExchange(
            email=request.email,
            sso_auth_token=request.sso_auth_token,
            password=request.password
        )
    return PasswordLogin(email=request.email, password=request.password)


# Outcomes

@dataclass
class Authenticated:
    user: User
    session: IssuedSession


@dataclass
class ChallengeIssued:
    """Password accepted; a second factor is still required."""
    user: User
    challenge: IssuedChallenge


@dataclass
class Rejected:
    error: AuthError


LoginOutcome = Union[Authenticated, ChallengeIssued, Rejected]


class AuthService:
    """Drives one sign-in request through exactly one authentication path."""

    def __init__(
        self,
        db: Session,
        users: Optional[UserStore] = None,
        sessions: Optional[SessionService] = None,
        mfa: Optional[MfaCoordinator] = None,
        sso: Optional[SsoTokenValidator] = None,
        external_sync: Optional[ExternalIdentitySync] = None
    ):
        self.db = db
        self.users = users if users is not None else UserStore(db)
        self.sessions = sessions if sessions is not None else SessionService(db)
        self.mfa = mfa if mfa is not None else MfaCoordinator(db)
        self.sso = sso if sso is not None else SsoTokenValidator(db)
        self.external_sync = external_sync if external_sync is not None else ExternalIdentitySync()

    def login(self, request: LoginRequest) -> LoginOutcome:
        """Authenticate a sign-in request.

        Returns Authenticated, ChallengeIssued or Rejected. Only password
        logins that carried both email and password trigger the external
        identity sync, and only after the outcome is fixed.
        """
        mode = classify_login(request)

        try:
            if isinstance(mode, MfaVerification):
                return self._verify_mfa(mode)
            if isinstance(mode, SsoExchange):
                outcome = self._exchange_sso(mode)
                if outcome is not None:
                    return outcome
                mode = PasswordLogin(email=mode.email, password=mode.password)
            outcome = self._login_with_password(mode)
        except AuthError as e:
            logger.warning(f"Sign-in rejected ({type(mode).__name__}): {e.code}")
            return Rejected(error=e)

        if isinstance(outcome, Authenticated) and mode.email and mode.password:
            self.external_sync.dispatch_login_or_register(
                outcome.user.email,
                mode.password,
                outcome.user.available_name,
                outcome.session.session_id
            )
        return outcome

    def _verify_mfa(self, mode: MfaVerification) -> Authenticated:
        user = self.mfa.verify_token(mode.mfa_token)

        if not self.mfa.authenticate(user, mode.otp_code, mode.backup_code):
            raise InvalidCode()

        if not self.mfa.complete_challenge(mode.mfa_token):
            raise InvalidToken()

        return self._sign_in(user, "mfa")

    def _exchange_sso(self, mode: SsoExchange) -> Optional[Authenticated]:
        """Sign in with the SSO token.

        Returns None when the token does not authenticate but a password was
        sent, so the caller continues with the password path.
        """
        user = self.users.find_by_email(mode.email)

        if user is not None and self.sso.consume(user, mode.sso_auth_token):
            return self._sign_in(user, "sso")

        if mode.password:
            logger.info(f"SSO token not accepted for {mode.email!r}; trying password")
            return None
        raise InvalidToken()

    def _login_with_password(self, mode: PasswordLogin) -> Union[Authenticated, ChallengeIssued]:
        user = self.users.find_by_email(mode.email)

        if user is None or not mode.password:
            self.users.perform_dummy_verification(mode.password)
            logger.warning(f"Login attempt for unknown user or without password: {mode.email!r}")
            raise InvalidCredentials()

        # Locked accounts are refused before the password is looked at
        if user.is_locked():
            self.users.perform_dummy_verification(mode.password)
            logger.warning(f"Login attempt for locked account: {user.email}")
            raise AccountInactive(self._inactive_reason(user))

        if not self.users.verify_password(user, mode.password):
            self.users.record_failed_login(user)
            raise InvalidCredentials()

        if not user.active_for_authentication:
            raise AccountInactive(self._inactive_reason(user))

        if user.mfa_enabled:
            challenge = self.mfa.issue_challenge(user)
            return ChallengeIssued(user=user, challenge=challenge)

        return self._sign_in(user, "password")

    @staticmethod
    def _inactive_reason(user: User) -> str:
        if not user.is_active:
            return "Account is deactivated"
        if user.is_locked():
            return "Account is temporarily locked"
        return "You have to confirm your email address before continuing"

    def _sign_in(self, user: User, method: str) -> Authenticated:
        session = self.sessions.issue(user)
        logger.info(f"User {user.email} signed in via {method}")
        return Authenticated(user=user, session=session)

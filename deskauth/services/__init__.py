"""Business logic services for DeskAuth."""

from deskauth.services.auth_service import AuthService
from deskauth.services.external_identity import ExternalIdentityClient, ExternalIdentitySync
from deskauth.services.mfa_service import MfaCoordinator, TotpMfaProvider
from deskauth.services.password_reset_service import PasswordResetService
from deskauth.services.session_service import SessionService
from deskauth.services.session_store import SessionAuxStore
from deskauth.services.sso_service import SsoTokenValidator
from deskauth.services.user_store import UserStore

__all__ = [
    "AuthService",
    "ExternalIdentityClient",
    "ExternalIdentitySync",
    "MfaCoordinator",
    "TotpMfaProvider",
    "PasswordResetService",
    "SessionService",
    "SessionAuxStore",
    "SsoTokenValidator",
    "UserStore",
]

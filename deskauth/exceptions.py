"""Authentication error taxonomy.

Every error surfaced to a caller carries a stable ``code`` and an HTTP
``status_code``. ``ExternalSyncFailure`` is the exception: it is raised and
caught inside the external identity sync job and never reaches a response.
"""

from fastapi import status


class AuthError(Exception):
    """Base class for authentication failures surfaced to the caller."""

    code = "auth_error"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication failed"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidCredentials(AuthError):
    """Unknown email, missing fields or wrong password."""

    code = "invalid_credentials"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid login credentials. Please try again."


class InvalidToken(AuthError):
    """Unknown, expired or already-used MFA, SSO or reset token."""

    code = "invalid_token"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid or expired token"


class InvalidCode(AuthError):
    """Wrong OTP or backup code for a valid MFA challenge."""

    code = "invalid_code"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid verification code"


class AccountInactive(AuthError):
    """Account exists and the password matched, but sign-in is not allowed."""

    code = "account_inactive"
    status_code = status.HTTP_403_FORBIDDEN
    message = "Account is not active"


class PasswordMismatch(AuthError):
    code = "password_mismatch"
    status_code = 422
    message = "Password confirmation does not match"


class ExternalSyncFailure(Exception):
    """Network error, timeout or non-success reply from the identity system."""

    code = "external_sync_failure"

    def __init__(self, operation: str, email: str, detail: str):
        super().__init__(f"{operation} failed for {email}: {detail}")
        self.operation = operation
        self.email = email
        self.detail = detail

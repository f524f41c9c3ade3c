"""Authentication schemas."""

from pydantic import BaseModel
from typing import Optional


class LoginRequest(BaseModel):
    """Sign-in request.

    Which optional fields are populated decides the mode: ``mfa_token``
    (MFA verification), then ``sso_auth_token`` (SSO exchange), otherwise a
    password login. Email is not validated here; a missing or malformed
    email is simply a failed lookup.
    """
    email: Optional[str] = None
    password: Optional[str] = None
    mfa_token: Optional[str] = None
    otp_code: Optional[str] = None
    backup_code: Optional[str] = None
    sso_auth_token: Optional[str] = None


class UserInfo(BaseModel):
    """User information in login response."""
    id: str
    email: str
    name: str
    display_name: Optional[str] = None
    confirmed: bool
    mfa_enabled: bool


class LoginResponse(BaseModel):
    """Login response schema."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserInfo


class MfaRequiredResponse(BaseModel):
    """Partial-success response: password accepted, second factor pending."""
    mfa_required: bool = True
    mfa_token: str


class ErrorResponse(BaseModel):
    error: str
    message: str


class LogoutResponse(BaseModel):
    """Logout response schema."""
    message: str
    session_terminated: bool


class PasswordResetRequest(BaseModel):
    email: Optional[str] = None


class PasswordResetCompletion(BaseModel):
    """Reset completion; the raw token comes from the emailed link."""
    reset_password_token: Optional[str] = None
    password: str
    password_confirmation: str


class MessageResponse(BaseModel):
    message: str


class InvalidResetTokenResponse(BaseModel):
    message: str
    redirect_url: str = "/"


class ExternalIdentityTokenResponse(BaseModel):
    """External identity token stored for the caller's session, if any."""
    token: Optional[str] = None
    linked: bool

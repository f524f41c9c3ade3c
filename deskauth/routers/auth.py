"""Authentication API endpoints."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session
from urllib.parse import urlencode
import logging

from deskauth.config import settings
from deskauth.database import get_db
from deskauth.exceptions import InvalidToken, PasswordMismatch
from deskauth.models.user import User
from deskauth.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MfaRequiredResponse,
    ErrorResponse,
    LogoutResponse,
    PasswordResetRequest,
    PasswordResetCompletion,
    MessageResponse,
    InvalidResetTokenResponse,
    UserInfo,
)
from deskauth.services.auth_service import AuthService, Authenticated, ChallengeIssued, Rejected
from deskauth.services.external_identity import (
    ExternalIdentityClient,
    ExternalIdentitySync,
    get_external_identity_client,
)
from deskauth.services.password_reset_service import PasswordResetService, ResetNotFound
from deskauth.services.session_service import IssuedSession, SessionService, extract_bearer_token
from deskauth.services.session_store import SessionAuxStore, get_session_store

router = APIRouter()
logger = logging.getLogger(__name__)


def login_page_url(error: str = None) -> str:
    """Front-end login page, optionally carrying an error code."""
    url = f"{settings.FRONTEND_URL.rstrip('/')}/app/login"
    if error:
        url = f"{url}?{urlencode({'error': error})}"
    return url


def _external_sync(
    background_tasks: BackgroundTasks,
    client: ExternalIdentityClient,
    session_store: SessionAuxStore
) -> ExternalIdentitySync:
    """External sync that runs after the response has been sent."""
    return ExternalIdentitySync(
        client=client,
        schedule=background_tasks.add_task,
        session_store=session_store
    )


def _session_response(user: User, session: IssuedSession) -> JSONResponse:
    """Full-success response with the session credential in body and cookie."""
    body = LoginResponse(
        access_token=session.access_token,
        token_type="bearer",
        expires_in=session.expires_in,
        user=UserInfo(
            id=user.id,
            email=user.email,
            name=user.name,
            display_name=user.display_name,
            confirmed=user.is_confirmed,
            mfa_enabled=bool(user.mfa_enabled)
        )
    )
    response = JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump())
    response.set_cookie(
        key="access_token",
        value=session.access_token,
        httponly=True,
        secure=settings.ENVIRONMENT != "development",
        samesite="lax",
        max_age=session.expires_in
    )
    return response


@router.post(
    "/sign_in",
    response_model=LoginResponse,
    responses={
        206: {"model": MfaRequiredResponse},
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
    }
)
async def sign_in(
    request: LoginRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client: ExternalIdentityClient = Depends(get_external_identity_client),
    session_store: SessionAuxStore = Depends(get_session_store)
):
    """Authenticate by password, SSO token or MFA code."""
    auth_service = AuthService(
        db,
        sessions=SessionService(db, session_store),
        external_sync=_external_sync(background_tasks, client, session_store)
    )

    try:
        outcome = auth_service.login(request)
    except Exception as e:
        logger.error(f"Login error: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication failed"
        )

    if isinstance(outcome, ChallengeIssued):
        return JSONResponse(
            status_code=status.HTTP_206_PARTIAL_CONTENT,
            content=MfaRequiredResponse(mfa_token=outcome.challenge.token).model_dump()
        )

    if isinstance(outcome, Rejected):
        return JSONResponse(status_code=outcome.error.status_code, content=outcome.error.to_dict())

    return _session_response(outcome.user, outcome.session)


@router.get("/sign_in")
async def sign_in_page():
    """Sign-in is API-only; browsers are sent to the front-end login page."""
    return RedirectResponse(url=login_page_url(error="access-denied"))


@router.delete("/sign_out", response_model=LogoutResponse)
async def sign_out(
    request: Request,
    db: Session = Depends(get_db),
    session_store: SessionAuxStore = Depends(get_session_store)
):
    """Revoke the current session and clear its auxiliary values."""
    session_service = SessionService(db, session_store)
    terminated = False

    token = extract_bearer_token(request)
    if token:
        try:
            session = session_service.verify_token(token)
            terminated = session_service.revoke(session.id)
        except InvalidToken:
            logger.info("Sign-out with an invalid or expired session token")

    response = JSONResponse(
        content=LogoutResponse(
            message="Successfully logged out",
            session_terminated=terminated
        ).model_dump()
    )
    response.delete_cookie("access_token", path="/")
    return response


@router.post(
    "/password",
    response_model=MessageResponse,
    responses={404: {"model": MessageResponse}}
)
async def request_password_reset(
    request: PasswordResetRequest,
    db: Session = Depends(get_db),
    client: ExternalIdentityClient = Depends(get_external_identity_client),
    session_store: SessionAuxStore = Depends(get_session_store)
):
    """Send reset instructions. Unknown emails get a 404."""
    reset_service = PasswordResetService(
        db,
        sessions=SessionService(db, session_store),
        external_sync=ExternalIdentitySync(client=client, session_store=session_store)
    )
    result = reset_service.request_reset(request.email)

    if isinstance(result, ResetNotFound):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"message": "Email address not found. Please check and try again."}
        )

    return MessageResponse(
        message="Request for password reset is successful. Check your mail for instructions."
    )


@router.put(
    "/password",
    response_model=LoginResponse,
    responses={422: {"model": InvalidResetTokenResponse}}
)
async def complete_password_reset(
    request: PasswordResetCompletion,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client: ExternalIdentityClient = Depends(get_external_identity_client),
    session_store: SessionAuxStore = Depends(get_session_store)
):
    """Set a new password from a reset token and sign the user in."""
    reset_service = PasswordResetService(
        db,
        sessions=SessionService(db, session_store),
        external_sync=_external_sync(background_tasks, client, session_store)
    )

    try:
        result = reset_service.complete_reset(
            request.reset_password_token,
            request.password,
            request.password_confirmation
        )
    except (InvalidToken, PasswordMismatch) as e:
        message = "Invalid token" if isinstance(e, InvalidToken) else e.message
        return JSONResponse(
            status_code=422,
            content=InvalidResetTokenResponse(message=message, redirect_url="/").model_dump()
        )

    return _session_response(result.user, result.session)

"""Session issuance and verification."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
import jwt
import logging

from deskauth.config import settings
from deskauth.database import get_db
from deskauth.exceptions import InvalidToken
from deskauth.models.user import User
from deskauth.models.user_session import UserSession
from deskauth.services.session_store import SessionAuxStore, get_session_store
from deskauth.utils.timezone import utcnow, is_expired
from deskauth.utils.tokens import generate_token

logger = logging.getLogger(__name__)


@dataclass
class IssuedSession:
    """Credential handed back to the client after a successful sign-in."""

    access_token: str
    session_id: str
    expires_in: int


class SessionService:
    """Creates, verifies and revokes session credentials."""

    def __init__(self, db: Session, session_store: Optional[SessionAuxStore] = None):
        self.db = db
        self.session_store = session_store if session_store is not None else get_session_store()

    def issue(self, user: User) -> IssuedSession:
        """Create a session for the user and record the sign-in."""
        expires_in = settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        session_id = generate_token(24)

        self.db.add(UserSession(
            id=session_id,
            user_id=user.id,
            expires_at=utcnow() + timedelta(seconds=expires_in)
        ))

        user.last_login = utcnow()
        user.sign_in_count = (user.sign_in_count or 0) + 1
        user.failed_login_attempts = 0
        user.account_locked_until = None
        self.db.commit()

        token = self._encode(user, session_id, expires_in)
        logger.info(f"Session issued for {user.email}")
        return IssuedSession(access_token=token, session_id=session_id, expires_in=expires_in)

    def _encode(self, user: User, session_id: str, expires_in: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "sid": session_id,
            "email": user.email,
            "iat": now,
            "exp": now + timedelta(seconds=expires_in)
        }
        return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    def verify_token(self, token: str) -> UserSession:
        """Decode a session token and return its live session row."""
        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM]
            )
        except jwt.ExpiredSignatureError:
            raise InvalidToken("Token has expired")
        except jwt.InvalidTokenError:
            raise InvalidToken("Invalid token")

        session = self.db.query(UserSession).filter(UserSession.id == payload.get("sid")).first()
        if session is None or session.revoked_at is not None or is_expired(session.expires_at):
            raise InvalidToken("Session is no longer valid")
        return session

    def revoke(self, session_id: str) -> bool:
        """Revoke a session and drop its auxiliary values. Returns False if already revoked."""
        self.session_store.clear_session(session_id)

        session = self.db.query(UserSession).filter(UserSession.id == session_id).first()
        if session is None or session.revoked_at is not None:
            return False

        session.revoked_at = utcnow()
        self.db.commit()
        logger.info(f"Session revoked for user {session.user_id}")
        return True


def extract_bearer_token(request: Request) -> Optional[str]:
    """Get the session token from the Authorization header or the access_token cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.replace("Bearer ", "", 1)
    return request.cookies.get("access_token")


def get_current_session(
    request: Request,
    db: Session = Depends(get_db),
    session_store: SessionAuxStore = Depends(get_session_store)
) -> UserSession:
    """Dependency that requires a valid session credential."""
    token = extract_bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    try:
        return SessionService(db, session_store).verify_token(token)
    except InvalidToken as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message
        )

"""External identity token lookup for the signed-in session."""

from fastapi import APIRouter, Depends
import logging

from deskauth.models.user_session import UserSession
from deskauth.schemas.auth import ExternalIdentityTokenResponse
from deskauth.services.session_service import get_current_session
from deskauth.services.session_store import (
    EXTERNAL_IDENTITY_TOKEN_KEY,
    SessionAuxStore,
    get_session_store,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/token", response_model=ExternalIdentityTokenResponse)
async def get_external_identity_token(
    session: UserSession = Depends(get_current_session),
    session_store: SessionAuxStore = Depends(get_session_store)
):
    """
    Return the external identity token obtained at sign-in.

    The token only exists when the sign-in was a password login and the
    external system answered. It is never fetched here; the user signs in
    again to obtain one.
    """
    token = session_store.get(session.id, EXTERNAL_IDENTITY_TOKEN_KEY)
    if not token:
        logger.debug(f"No external identity token for session of user {session.user_id}")

    return ExternalIdentityTokenResponse(token=token, linked=bool(token))

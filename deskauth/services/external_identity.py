"""
External identity system client.

Mirrors local credentials to a remote identity API on a best-effort basis:
- Login, then register when login yields no token
- Password sync after a reset

Nothing in this module raises to its caller. Every failure is logged and
turned into ``None``. Known limitation: registration is attempted whenever
login yields no token, including after timeouts and 5xx replies, not only
when the remote account is missing.
"""

import logging
from typing import Any, Callable, Optional

import httpx

from deskauth.config import settings
from deskauth.exceptions import ExternalSyncFailure
from deskauth.services.session_store import (
    EXTERNAL_IDENTITY_TOKEN_KEY,
    SessionAuxStore,
    get_session_store,
)

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/login"
REGISTER_PATH = "/auth/register"
SYNC_PASSWORD_PATH = "/auth/sync-password"


class ExternalIdentityClient:
    """Stateless request/response wrapper around the remote identity API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        enabled: Optional[bool] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.base_url = base_url if base_url is not None else settings.EXTERNAL_IDENTITY_BASE_URL
        self.timeout = timeout if timeout is not None else settings.EXTERNAL_IDENTITY_TIMEOUT_SECONDS
        self.enabled = enabled if enabled is not None else settings.EXTERNAL_IDENTITY_ENABLED
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        """Check if the client is enabled and has somewhere to send requests."""
        return bool(self.enabled and self.base_url)

    def _post(self, operation: str, email: str, path: str, payload: dict) -> httpx.Response:
        """POST a JSON body; raise ExternalSyncFailure on network errors and non-2xx replies."""
        try:
            # Same bound for connect, read, write and pool acquisition
            with httpx.Client(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport
            ) as client:
                response = client.post(
                    path,
                    json=payload,
                    headers={"Content-Type": "application/json"}
                )
        except httpx.HTTPError as e:
            raise ExternalSyncFailure(operation, email, f"{type(e).__name__}: {e}")

        if not response.is_success:
            raise ExternalSyncFailure(operation, email, f"HTTP {response.status_code}")

        return response

    @staticmethod
    def _extract_token(operation: str, email: str, response: httpx.Response) -> str:
        """Pull ``data.token`` out of a success body."""
        try:
            body = response.json()
        except ValueError:
            raise ExternalSyncFailure(operation, email, "response body is not JSON")

        data = body.get("data") if isinstance(body, dict) else None
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise ExternalSyncFailure(operation, email, "response carries no token")
        return token

    def login(self, email: str, password: str) -> Optional[str]:
        """Log in to the identity system. Returns its token or None."""
        if not self.is_configured:
            logger.debug(f"[External Identity] Not configured; skipping login for {email}")
            return None

        try:
            response = self._post("login", email, LOGIN_PATH, {"email": email, "password": password})
            return self._extract_token("login", email, response)
        except ExternalSyncFailure as e:
            logger.warning(f"[External Identity] Login error for {email}: {e.detail}")
            return None

    def register(self, email: str, password: str, name: Optional[str] = None) -> Optional[str]:
        """Create the account on the identity system. Returns its token or None."""
        if not self.is_configured:
            logger.debug(f"[External Identity] Not configured; skipping register for {email}")
            return None

        payload = {
            "email": email,
            "password": password,
            "name": name or default_display_name(email),
            "role": settings.EXTERNAL_IDENTITY_DEFAULT_ROLE
        }

        try:
            response = self._post("register", email, REGISTER_PATH, payload)
            return self._extract_token("register", email, response)
        except ExternalSyncFailure as e:
            logger.warning(f"[External Identity] Register error for {email}: {e.detail}")
            return None

    def login_or_register(self, email: str, password: str, display_name: Optional[str] = None) -> Optional[str]:
        """Log in; when that yields no token, try registering instead."""
        token = self.login(email, password)
        if token:
            logger.info(f"[External Identity] Logged in {email}")
            return token

        token = self.register(email, password, display_name)
        if token:
            logger.info(f"[External Identity] Registered {email}")
        else:
            logger.warning(f"[External Identity] Registration failed for {email}")
        return token

    def sync_password(self, email: str, password: str) -> None:
        """Push a new password to the identity system."""
        if not self.is_configured:
            logger.debug(f"[External Identity] Not configured; skipping password sync for {email}")
            return

        try:
            self._post("sync-password", email, SYNC_PASSWORD_PATH, {"email": email, "password": password})
            logger.info(f"[External Identity] Password updated for {email}")
        except ExternalSyncFailure as e:
            logger.warning(f"[External Identity] Password update failed for {email}: {e.detail}")


def default_display_name(email: str) -> str:
    """Local part of the email, used when no display name is known."""
    return email.split("@", 1)[0]


def run_inline(func: Callable[..., Any], *args, **kwargs) -> None:
    """Scheduler that runs the job immediately (scripts and tests)."""
    func(*args, **kwargs)


class ExternalIdentitySync:
    """Dispatches external identity jobs detached from the request outcome.

    ``schedule`` has the signature of ``BackgroundTasks.add_task``. The
    dispatch methods return None; nothing a job does can reach the caller.
    """

    def __init__(
        self,
        client: Optional[ExternalIdentityClient] = None,
        schedule: Optional[Callable[..., Any]] = None,
        session_store: Optional[SessionAuxStore] = None
    ):
        self.client = client if client is not None else get_external_identity_client()
        self._schedule = schedule or run_inline
        self.session_store = session_store if session_store is not None else get_session_store()

    def dispatch_login_or_register(
        self,
        email: str,
        password: str,
        display_name: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> None:
        self._dispatch("login_or_register", email, self._login_or_register_job,
                       email, password, display_name, session_id)

    def dispatch_password_sync(self, email: str, password: str) -> None:
        self._dispatch("sync_password", email, self._password_sync_job, email, password)

    def _dispatch(self, operation: str, email: str, job: Callable[..., None], *args) -> None:
        try:
            self._schedule(job, *args)
        except Exception as e:
            logger.warning(f"[External Identity] Could not schedule {operation} for {email}: {e}")

    def _login_or_register_job(
        self,
        email: str,
        password: str,
        display_name: Optional[str],
        session_id: Optional[str]
    ) -> None:
        try:
            token = self.client.login_or_register(email, password, display_name)
            if token and session_id:
                self.session_store.set(session_id, EXTERNAL_IDENTITY_TOKEN_KEY, token)
                logger.info(f"[External Identity] Token stored for session of {email}")
        except Exception as e:
            logger.warning(f"[External Identity] login_or_register sync failed for {email}: {e}", exc_info=True)

    def _password_sync_job(self, email: str, password: str) -> None:
        try:
            self.client.sync_password(email, password)
        except Exception as e:
            logger.warning(f"[External Identity] sync_password failed for {email}: {e}", exc_info=True)


# Global client instance
_external_identity_client: Optional[ExternalIdentityClient] = None


def get_external_identity_client() -> ExternalIdentityClient:
    """Get or create the external identity client."""
    global _external_identity_client
    if _external_identity_client is None:
        _external_identity_client = ExternalIdentityClient()
    return _external_identity_client

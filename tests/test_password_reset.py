"""Tests for the password reset flow."""

from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy.orm import sessionmaker

from deskauth.config import settings
from deskauth.exceptions import InvalidToken, PasswordMismatch
from deskauth.models.user_session import UserSession
from deskauth.services.external_identity import ExternalIdentitySync
from deskauth.services.password_reset_service import (
    CompletedReset,
    PasswordResetService,
    ResetNotFound,
    ResetRequested,
    build_reset_url,
    digest_reset_token,
)
from deskauth.services.session_service import SessionService
from deskauth.services.user_store import UserStore
from deskauth.utils.timezone import utcnow


class CapturingSender:
    """Keeps reset links instead of mailing them."""

    def __init__(self):
        self.sent = []

    def send(self, user, reset_url):
        self.sent.append((user.email, reset_url))

    def last_token(self):
        _, url = self.sent[-1]
        return parse_qs(urlparse(url).query)["reset_password_token"][0]


class LookupThenRun(UserStore):
    """User store that lets another completion run right after the token lookup."""

    def __init__(self, db, after_lookup):
        super().__init__(db)
        self.after_lookup = after_lookup

    def find_by_reset_password_token(self, digest):
        user = super().find_by_reset_password_token(digest)
        self.after_lookup()
        return user


@pytest.fixture
def sender():
    return CapturingSender()


@pytest.fixture
def reset_service(db, identity_client, session_store, sender):
    return PasswordResetService(
        db,
        sessions=SessionService(db, session_store),
        external_sync=ExternalIdentitySync(client=identity_client, session_store=session_store),
        sender=sender
    )


class TestRequestReset:
    """Test reset initiation."""

    def test_known_email_sends_instructions(self, db, create_user, reset_service, sender):
        user = create_user()

        result = reset_service.request_reset(" A@X.com ")

        assert isinstance(result, ResetRequested)
        db.refresh(user)
        assert user.reset_password_sent_at is not None
        assert user.reset_password_token == digest_reset_token(sender.last_token())
        assert sender.sent[0][1].startswith(f"{settings.FRONTEND_URL}/app/auth/password/edit?")

    def test_unknown_email_is_reported(self, reset_service, sender):
        result = reset_service.request_reset("nobody@x.com")

        assert isinstance(result, ResetNotFound)
        assert sender.sent == []

    def test_reset_url_encodes_token(self):
        url = build_reset_url("a+b/c")

        assert parse_qs(urlparse(url).query)["reset_password_token"] == ["a+b/c"]


class TestCompleteReset:
    """Test reset completion."""

    def test_valid_token_resets_and_signs_in(self, db, create_user, reset_service, sender, identity_server):
        user = create_user(confirmation_token="confirm-me")
        reset_service.request_reset("a@x.com")

        result = reset_service.complete_reset(sender.last_token(), "new-secret", "new-secret")

        assert isinstance(result, CompletedReset)
        assert result.session.access_token
        db.refresh(user)
        assert user.reset_password_token is None
        assert user.confirmation_token is None
        assert user.reset_password_sent_at is None
        assert UserStore(db).verify_password(user, "new-secret")
        assert db.query(UserSession).count() == 1
        assert identity_server.bodies("/auth/sync-password") == [{"email": "a@x.com", "password": "new-secret"}]

    def test_token_is_single_use(self, create_user, reset_service, sender):
        create_user()
        reset_service.request_reset("a@x.com")
        token = sender.last_token()

        reset_service.complete_reset(token, "new-secret", "new-secret")

        with pytest.raises(InvalidToken):
            reset_service.complete_reset(token, "another", "another")

    def test_unconfirmed_account_is_confirmed(self, db, create_user, reset_service, sender):
        user = create_user(confirmed_at=None)
        reset_service.request_reset("a@x.com")

        reset_service.complete_reset(sender.last_token(), "new-secret", "new-secret")

        db.refresh(user)
        assert user.is_confirmed

    @pytest.mark.parametrize("token", [None, "", "made-up"])
    def test_unknown_token(self, reset_service, token):
        with pytest.raises(InvalidToken):
            reset_service.complete_reset(token, "new-secret", "new-secret")

    def test_expired_token_has_no_side_effects(self, db, create_user, reset_service, sender):
        user = create_user()
        reset_service.request_reset("a@x.com")
        user.reset_password_sent_at = utcnow() - timedelta(hours=settings.RESET_PASSWORD_WITHIN_HOURS, minutes=1)
        db.commit()
        old_hash = user.hashed_password

        with pytest.raises(InvalidToken):
            reset_service.complete_reset(sender.last_token(), "new-secret", "new-secret")

        db.refresh(user)
        assert user.hashed_password == old_hash
        assert user.reset_password_token is not None

    def test_mismatched_confirmation(self, db, create_user, reset_service, sender, identity_server):
        user = create_user()
        reset_service.request_reset("a@x.com")

        with pytest.raises(PasswordMismatch):
            reset_service.complete_reset(sender.last_token(), "new-secret", "different")

        db.refresh(user)
        assert user.reset_password_token is not None
        assert identity_server.requests == []

    def test_sync_failure_does_not_affect_reset(self, create_user, reset_service, sender, identity_server):
        create_user()
        identity_server.sync_status = 502
        reset_service.request_reset("a@x.com")

        result = reset_service.complete_reset(sender.last_token(), "new-secret", "new-secret")

        assert isinstance(result, CompletedReset)

    def test_concurrent_completions_reset_once(
        self, db, create_user, reset_service, sender, identity_client, session_store
    ):
        user = create_user()
        reset_service.request_reset("a@x.com")
        token = sender.last_token()
        other_db = sessionmaker(bind=db.get_bind())()
        completed = []

        def complete_elsewhere():
            completed.append(reset_service.complete_reset(token, "first-secret", "first-secret"))

        racing = PasswordResetService(
            other_db,
            users=LookupThenRun(other_db, complete_elsewhere),
            sessions=SessionService(other_db, session_store),
            external_sync=ExternalIdentitySync(client=identity_client, session_store=session_store),
            sender=sender
        )

        try:
            with pytest.raises(InvalidToken):
                racing.complete_reset(token, "second-secret", "second-secret")
        finally:
            other_db.close()

        assert len(completed) == 1
        db.refresh(user)
        assert UserStore(db).verify_password(user, "first-secret")
        assert not UserStore(db).verify_password(user, "second-secret")
        assert db.query(UserSession).count() == 1

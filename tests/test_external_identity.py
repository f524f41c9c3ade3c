"""Tests for the external identity client and sync dispatcher."""

import logging

import httpx
import pytest

from deskauth.services.external_identity import (
    ExternalIdentityClient,
    ExternalIdentitySync,
    default_display_name,
)
from deskauth.services.session_store import EXTERNAL_IDENTITY_TOKEN_KEY

IDENTITY_BASE_URL = "https://identity.test/api"


class TestExternalIdentityClient:
    """Test suite for the request/response wrapper."""

    def test_login_returns_token(self, identity_client, identity_server):
        assert identity_client.login("a@x.com", "secret") == "ext-login-token"
        assert identity_server.paths == ["/api/auth/login"]

    def test_login_non_success_returns_none(self, identity_client, identity_server, caplog):
        identity_server.login_status = 401

        with caplog.at_level(logging.WARNING):
            assert identity_client.login("a@x.com", "secret") is None

        assert "HTTP 401" in caplog.text
        assert "a@x.com" in caplog.text

    def test_login_connection_refused_returns_none(self, identity_client, identity_server):
        identity_server.failure = lambda request: httpx.ConnectError("Connection refused", request=request)

        assert identity_client.login("a@x.com", "secret") is None

    def test_body_without_token_returns_none(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"data": {}}))
        client = ExternalIdentityClient(base_url=IDENTITY_BASE_URL, enabled=True, transport=transport)

        assert client.login("a@x.com", "secret") is None

    def test_non_json_body_returns_none(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>ok</html>"))
        client = ExternalIdentityClient(base_url=IDENTITY_BASE_URL, enabled=True, transport=transport)

        assert client.login("a@x.com", "secret") is None

    def test_register_defaults_name_to_local_part(self, identity_client, identity_server):
        assert identity_client.register("jane.doe@x.com", "secret") == "ext-register-token"

        body = identity_server.bodies("/auth/register")[0]
        assert body == {"email": "jane.doe@x.com", "password": "secret", "name": "jane.doe", "role": "USER"}

    def test_login_or_register_prefers_login(self, identity_client, identity_server):
        assert identity_client.login_or_register("a@x.com", "secret", "Alice") == "ext-login-token"
        assert identity_server.paths == ["/api/auth/login"]

    def test_login_or_register_falls_back(self, identity_client, identity_server):
        identity_server.login_status = 404

        assert identity_client.login_or_register("a@x.com", "secret", "Alice") == "ext-register-token"
        assert identity_server.bodies("/auth/register")[0]["name"] == "Alice"

    def test_sync_password_failure_is_swallowed(self, identity_client, identity_server, caplog):
        identity_server.sync_status = 500

        with caplog.at_level(logging.WARNING):
            identity_client.sync_password("a@x.com", "new-secret")

        assert "Password update failed for a@x.com" in caplog.text

    def test_sync_password_timeout_is_swallowed(self, identity_client, identity_server):
        identity_server.failure = lambda request: httpx.ConnectTimeout("timed out", request=request)

        identity_client.sync_password("a@x.com", "new-secret")

        assert identity_server.paths == ["/api/auth/sync-password"]

    @pytest.mark.parametrize("base_url,enabled", [("", True), (IDENTITY_BASE_URL, False)])
    def test_unconfigured_client_makes_no_requests(self, identity_server, base_url, enabled):
        client = ExternalIdentityClient(
            base_url=base_url,
            enabled=enabled,
            transport=httpx.MockTransport(identity_server.handler)
        )

        assert client.is_configured is False
        assert client.login_or_register("a@x.com", "secret") is None
        client.sync_password("a@x.com", "secret")
        assert identity_server.requests == []

    def test_timeout_applies_to_connect_and_read(self):
        seen = {}

        def handler(request):
            seen.update(request.extensions["timeout"])
            return httpx.Response(200, json={"data": {"token": "t"}})

        client = ExternalIdentityClient(
            base_url=IDENTITY_BASE_URL, timeout=5.0, enabled=True, transport=httpx.MockTransport(handler)
        )
        client.login("a@x.com", "secret")

        assert seen["connect"] == 5.0
        assert seen["read"] == 5.0

    def test_default_display_name(self):
        assert default_display_name("someone@example.com") == "someone"


class TestExternalIdentitySync:
    """Test suite for detached dispatch."""

    def test_job_stores_token_for_session(self, identity_client, session_store):
        sync = ExternalIdentitySync(client=identity_client, session_store=session_store)

        result = sync.dispatch_login_or_register("a@x.com", "secret", "A", "session-1")

        assert result is None
        assert session_store.get("session-1", EXTERNAL_IDENTITY_TOKEN_KEY) == "ext-login-token"

    def test_job_exceptions_are_logged_not_raised(self, session_store, caplog):
        class ExplodingClient:
            def login_or_register(self, *args):
                raise RuntimeError("boom")

            def sync_password(self, *args):
                raise RuntimeError("boom")

        sync = ExternalIdentitySync(client=ExplodingClient(), session_store=session_store)

        with caplog.at_level(logging.WARNING):
            sync.dispatch_login_or_register("a@x.com", "secret", None, "session-1")
            sync.dispatch_password_sync("a@x.com", "secret")

        assert "login_or_register sync failed for a@x.com" in caplog.text
        assert "sync_password failed for a@x.com" in caplog.text
        assert len(session_store) == 0

    def test_scheduler_failure_is_swallowed(self, identity_client, session_store):
        def broken_scheduler(func, *args, **kwargs):
            raise RuntimeError("queue full")

        sync = ExternalIdentitySync(client=identity_client, schedule=broken_scheduler, session_store=session_store)

        sync.dispatch_password_sync("a@x.com", "secret")

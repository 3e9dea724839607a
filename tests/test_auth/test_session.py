"""Tests for token grants against the authorization server."""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from conftest import ENVIRONMENT, json_response, token_body
from connctl.auth import CredentialStore, token_endpoint
from connctl.connections import ConnectionRegistry
from connctl.exceptions import (
    AuthConfigError,
    AuthEndpointNotFoundError,
    AuthOptionsError,
    AuthRejectedError,
    AuthResponseError,
    AuthServerUnreachableError,
    AuthServiceDownError,
    SecretNotFoundError,
)

TOKEN_URL = token_endpoint(ENVIRONMENT.auth_url, ENVIRONMENT.realm)


def _form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


@pytest.fixture
def connection(registry: ConnectionRegistry):
    return registry.add("staging", "https://cw.example.com", "Developer")


class TestTokenEndpoint:
    def test_builds_realm_path(self) -> None:
        assert (
            token_endpoint("https://auth.example.com/", "codewind")
            == "https://auth.example.com/auth/realms/codewind/protocol/openid-connect/token"
        )


# ---------------------------------------------------------------------------
# Password grant
# ---------------------------------------------------------------------------


class TestAuthenticate:
    def test_with_connection_stores_tokens_and_password(
        self, make_client, session_factory, store: CredentialStore, connection
    ) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(token_body("acc", "ref"))

        session = session_factory(make_client(handler))
        token = session.authenticate(connection.id, password="s3cret")

        assert token.access_token == "acc"
        assert str(seen[0].url) == TOKEN_URL
        assert _form(seen[0]) == {
            "grant_type": "password",
            "client_id": ENVIRONMENT.client_id,
            "username": "developer",
            "password": "s3cret",
        }
        assert store.get(connection.id, "access_token") == "acc"
        assert store.get(connection.id, "refresh_token") == "ref"
        assert store.get(connection.id, "developer") == "s3cret"

    def test_uses_cached_password(
        self, make_client, session_factory, store: CredentialStore, connection
    ) -> None:
        store.put(connection.id, "developer", "cached")
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(token_body())

        session_factory(make_client(handler)).authenticate(connection.id)
        assert _form(seen[0])["password"] == "cached"

    def test_no_cached_password(self, make_client, session_factory, connection) -> None:
        session = session_factory(make_client(lambda r: json_response(token_body())))
        with pytest.raises(SecretNotFoundError):
            session.authenticate(connection.id)

    def test_overrides_win(self, make_client, session_factory, connection) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(token_body())

        session_factory(make_client(handler)).authenticate(
            connection.id,
            password="pw",
            realm_override="master",
            client_override="admin-cli",
        )
        assert "/auth/realms/master/" in str(seen[0].url)
        assert _form(seen[0])["client_id"] == "admin-cli"

    def test_explicit_details_without_connection(
        self, make_client, session_factory, store: CredentialStore
    ) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(token_body("acc"))

        token = session_factory(make_client(handler)).authenticate(
            host="https://other-auth.example.com",
            realm="r",
            client_id="c",
            username="USER",
            password="pw",
        )
        assert token.access_token == "acc"
        assert str(seen[0].url).startswith("https://other-auth.example.com/auth/realms/r/")
        assert _form(seen[0])["username"] == "user"

    def test_incomplete_details_without_connection(self, make_client, session_factory) -> None:
        session = session_factory(make_client(lambda r: json_response(token_body())))
        with pytest.raises(AuthConfigError) as exc_info:
            session.authenticate(host="https://auth", realm="r", username="u", password="p")
        assert exc_info.value.op == "sec_con_config"

    def test_unknown_connection(self, make_client, session_factory) -> None:
        session = session_factory(make_client(lambda r: json_response(token_body())))
        with pytest.raises(AuthConfigError):
            session.authenticate("nope", password="p")

    def test_missing_fields_after_resolution(
        self, make_client, session_factory, registry: ConnectionRegistry
    ) -> None:
        anonymous = registry.add("anon", "https://anon.example.com")
        session = session_factory(make_client(lambda r: json_response(token_body())))
        with pytest.raises(AuthOptionsError) as exc_info:
            session.authenticate(anonymous.id, password="pw")
        assert exc_info.value.op == "sec_cli_options"
        assert exc_info.value.message == "Invalid or missing command line options"

    def test_failure_stores_nothing(
        self, make_client, session_factory, store: CredentialStore, connection
    ) -> None:
        client = make_client(
            lambda r: json_response(
                {"error": "invalid_grant", "error_description": "Invalid user credentials"}, 401
            )
        )
        with pytest.raises(AuthRejectedError):
            session_factory(client).authenticate(connection.id, password="wrong")
        assert store.find(connection.id, "access_token") is None
        assert store.find(connection.id, "developer") is None


# ---------------------------------------------------------------------------
# Status mapping
# ---------------------------------------------------------------------------


class TestStatusMapping:
    def _authenticate(self, make_client, session_factory, connection, response: httpx.Response):
        session = session_factory(make_client(lambda r: response))
        return session.authenticate(connection.id, password="pw")

    @pytest.mark.parametrize("status", [400, 401])
    def test_rejection_uses_server_error_code(
        self, make_client, session_factory, connection, status: int
    ) -> None:
        body = {"error": "invalid_grant", "error_description": "Invalid user credentials"}
        with pytest.raises(AuthRejectedError) as exc_info:
            self._authenticate(make_client, session_factory, connection, json_response(body, status))
        assert exc_info.value.op == "invalid_grant"
        assert exc_info.value.message == "Invalid user credentials"

    def test_error_message_fallback(self, make_client, session_factory, connection) -> None:
        body = {"errorMessage": "Account disabled"}
        with pytest.raises(AuthRejectedError) as exc_info:
            self._authenticate(make_client, session_factory, connection, json_response(body, 400))
        assert exc_info.value.message == "Account disabled"
        assert exc_info.value.op == "sec_response"

    def test_bad_json_in_rejection(self, make_client, session_factory, connection) -> None:
        with pytest.raises(AuthRejectedError) as exc_info:
            self._authenticate(
                make_client, session_factory, connection, httpx.Response(401, text="nope")
            )
        assert "Bad JSON" in exc_info.value.message

    def test_not_found(self, make_client, session_factory, connection) -> None:
        with pytest.raises(AuthEndpointNotFoundError) as exc_info:
            self._authenticate(
                make_client, session_factory, connection, json_response({"error": "Realm does not exist"}, 404)
            )
        assert exc_info.value.message == "Realm does not exist"

    def test_service_down(self, make_client, session_factory, connection) -> None:
        with pytest.raises(AuthServiceDownError) as exc_info:
            self._authenticate(make_client, session_factory, connection, httpx.Response(503))
        assert exc_info.value.message == "Authentication service unavailable"

    def test_other_status(self, make_client, session_factory, connection) -> None:
        with pytest.raises(AuthResponseError) as exc_info:
            self._authenticate(
                make_client, session_factory, connection, httpx.Response(500, text="boom")
            )
        assert exc_info.value.message == "boom"
        assert exc_info.value.exit_code == 5

    def test_unparsable_success(self, make_client, session_factory, connection) -> None:
        with pytest.raises(AuthResponseError) as exc_info:
            self._authenticate(
                make_client, session_factory, connection, httpx.Response(200, text="<html>")
            )
        assert exc_info.value.op == "sec_bodyparser"

    def test_unreachable(self, make_client, session_factory, connection) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        session = session_factory(make_client(handler))
        with pytest.raises(AuthServerUnreachableError) as exc_info:
            session.authenticate(connection.id, password="pw")
        assert exc_info.value.op == "sec_connection"


# ---------------------------------------------------------------------------
# Refresh grant
# ---------------------------------------------------------------------------


class TestRefresh:
    def test_refresh_access_token(
        self, make_client, session_factory, store: CredentialStore, connection
    ) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(token_body("new-acc", "new-ref"))

        token = session_factory(make_client(handler)).refresh_access_token(connection, "old-ref")

        assert token.access_token == "new-acc"
        assert _form(seen[0]) == {
            "grant_type": "refresh_token",
            "client_id": ENVIRONMENT.client_id,
            "refresh_token": "old-ref",
        }
        assert store.get(connection.id, "access_token") == "new-acc"
        assert store.get(connection.id, "refresh_token") == "new-ref"

    def test_refresh_without_rotation_keeps_old_refresh_token(
        self, make_client, session_factory, store: CredentialStore, connection
    ) -> None:
        store.put(connection.id, "refresh_token", "old-ref")
        client = make_client(lambda r: json_response({"access_token": "new-acc"}))
        session_factory(client).refresh_access_token(connection, "old-ref")
        assert store.get(connection.id, "refresh_token") == "old-ref"

    def test_failed_refresh_stores_nothing(
        self, make_client, session_factory, store: CredentialStore, connection
    ) -> None:
        client = make_client(lambda r: json_response({"error": "invalid_grant"}, 400))
        with pytest.raises(AuthRejectedError):
            session_factory(client).refresh_access_token(connection, "old-ref")
        assert store.find(connection.id, "access_token") is None

    def test_refresh_tokens_uses_cached_refresh_token(
        self, make_client, session_factory, store: CredentialStore, connection
    ) -> None:
        store.put(connection.id, "refresh_token", "cached-ref")
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(token_body())

        session_factory(make_client(handler)).refresh_tokens(connection.id.lower())
        assert _form(seen[0])["refresh_token"] == "cached-ref"

    def test_refresh_tokens_without_cache(self, make_client, session_factory, connection) -> None:
        session = session_factory(make_client(lambda r: json_response(token_body())))
        with pytest.raises(SecretNotFoundError):
            session.refresh_tokens(connection.id)

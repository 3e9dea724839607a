"""Token grants against a connection's authorization server.

:class:`AuthSession` performs the two OAuth2 grants connctl needs, both
against the realm token endpoint::

    POST {auth_url}/auth/realms/{realm}/protocol/openid-connect/token

* ``grant_type=password`` -- :meth:`AuthSession.authenticate`, with
  ``client_id``, ``username`` and ``password``;
* ``grant_type=refresh_token`` -- :meth:`AuthSession.refresh_access_token`,
  with ``client_id`` and ``refresh_token``.

Non-200 answers are normalised into :class:`~connctl.exceptions.AuthError`
subclasses. For 400/401 the server's own ``error`` code (``invalid_grant``,
``unauthorized_client`` ...) becomes the error ``op`` so callers can branch
on it exactly as they would on a local failure.

Successful grants for a known connection are written to the
:class:`~connctl.auth.credential_store.CredentialStore` before returning.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from connctl.auth.credential_store import CredentialStore
from connctl.connections import ConnectionRegistry
from connctl.exceptions import (
    OP_RESPONSE,
    OP_RESPONSE_FORMAT,
    AuthConfigError,
    AuthEndpointNotFoundError,
    AuthOptionsError,
    AuthRejectedError,
    AuthResponseError,
    AuthServerUnreachableError,
    AuthServiceDownError,
    ConnectionNotFoundError,
)
from connctl.models import ACCESS_TOKEN, REFRESH_TOKEN, AuthToken, Connection
from connctl.output import get_output

TOKEN_PATH = "/auth/realms/{realm}/protocol/openid-connect/token"

_FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
    "Cache-Control": "no-cache",
}


def token_endpoint(auth_url: str, realm: str) -> str:
    """Return the token endpoint URL for *realm* on the server at *auth_url*."""
    return auth_url.rstrip("/") + TOKEN_PATH.format(realm=realm)


class AuthSession:
    """Mint access tokens for connections.

    Args:
        http_client: Client used for token requests; its timeout applies.
        registry: Source of the connection's ``auth_url``, ``realm`` and
            ``client_id``.
        store: Where cached passwords are read from and new tokens written to.
    """

    def __init__(
        self,
        http_client: httpx.Client,
        registry: ConnectionRegistry,
        store: CredentialStore,
    ) -> None:
        self._http = http_client
        self._registry = registry
        self._store = store

    def authenticate(
        self,
        connection_id: Optional[str] = None,
        *,
        host: Optional[str] = None,
        realm: Optional[str] = None,
        client_id: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        realm_override: Optional[str] = None,
        client_override: Optional[str] = None,
    ) -> AuthToken:
        """Run a password grant.

        Values are resolved in layers, later layers winning:

        1. the stored connection's ``auth_url`` / ``realm`` / ``client_id`` /
           ``username`` (when *connection_id* is given),
        2. explicit keyword arguments,
        3. *realm_override* / *client_override*, used for administrative
           realms that differ from the connection's own.

        Without an explicit *password* the one cached for the resolved
        username is used.

        Raises:
            AuthConfigError: If *connection_id* is unknown, or if it is absent
                and the explicit details are incomplete.
            AuthOptionsError: If a required value is still empty.
            SecretNotFoundError: If no password was given and none is cached.
            AuthError: For any failure reported by the authorization server.
        """
        host, realm, client_id = _clean(host), _clean(realm), _clean(client_id)
        username, password = _clean(username).lower(), _clean(password)
        connection_id = _clean(connection_id)

        if not connection_id and not (host and username and realm and client_id):
            raise AuthConfigError("Must supply a connection ID or connection details")

        connection: Optional[Connection] = None
        if connection_id:
            try:
                connection = self._registry.get_by_id(connection_id)
            except ConnectionNotFoundError as exc:
                raise AuthConfigError(exc.message) from exc
            host = host or connection.auth_url
            realm = realm or connection.realm
            client_id = client_id or connection.client_id
            username = username or connection.username.lower()
            if not password and username:
                password = self._store.get(connection.id, username)

        realm = _clean(realm_override) or realm
        client_id = _clean(client_override) or client_id

        if not (host and realm and username and password and client_id):
            raise AuthOptionsError("Invalid or missing command line options")

        token = self._request_token(
            token_endpoint(host, realm),
            {
                "grant_type": "password",
                "client_id": client_id,
                "username": username,
                "password": password,
            },
        )

        if connection is not None:
            self._store_tokens(connection.id, token)
            self._store.put(connection.id, username, password)
        return token

    def refresh_access_token(self, connection: Connection, refresh_token: str) -> AuthToken:
        """Exchange *refresh_token* for new tokens.

        The new access token, and the new refresh token when the server
        rotates it, are stored only after a successful exchange.

        Raises:
            AuthError: For any failure reported by the authorization server.
        """
        token = self._request_token(
            token_endpoint(connection.auth_url, connection.realm),
            {
                "grant_type": "refresh_token",
                "client_id": connection.client_id,
                "refresh_token": refresh_token,
            },
        )
        self._store_tokens(connection.id, token)
        return token

    def refresh_tokens(self, connection_id: str) -> AuthToken:
        """Refresh using the refresh token cached for *connection_id*.

        Raises:
            ConnectionNotFoundError: If the connection is unknown.
            SecretNotFoundError: If no refresh token is cached.
            AuthError: For any failure reported by the authorization server.
        """
        connection = self._registry.get_by_id(connection_id)
        refresh_token = self._store.get(connection.id, REFRESH_TOKEN)
        return self.refresh_access_token(connection, refresh_token)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _request_token(self, url: str, form: dict[str, str]) -> AuthToken:
        get_output().debug(f"Token request: POST {url} grant_type={form['grant_type']}")
        try:
            response = self._http.post(url, data=form, headers=_FORM_HEADERS)
        except httpx.HTTPError as exc:
            raise AuthServerUnreachableError(f"Unable to reach {url}: {exc}") from exc

        get_output().debug(f"Token response: HTTP {response.status_code}")
        _raise_for_token_status(response, url)

        try:
            return AuthToken.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise AuthResponseError(
                "Unable to parse authorization server response", op=OP_RESPONSE_FORMAT
            ) from exc

    def _store_tokens(self, connection_id: str, token: AuthToken) -> None:
        self._store.put(connection_id, ACCESS_TOKEN, token.access_token)
        if token.refresh_token:
            self._store.put(connection_id, REFRESH_TOKEN, token.refresh_token)


def _raise_for_token_status(response: httpx.Response, url: str) -> None:
    """Map a non-200 token endpoint answer to a typed error."""
    status = response.status_code
    if status == 200:
        return
    if status in (400, 401):
        body = _parse_error_body(response)
        raise AuthRejectedError(
            body.get("error_description") or f"HTTP {status}",
            op=body.get("error") or OP_RESPONSE,
        )
    if status == 404:
        body = _parse_error_body(response)
        raise AuthEndpointNotFoundError(body.get("error") or f"Token endpoint not found: {url}")
    if status == 503:
        raise AuthServiceDownError()
    raise AuthResponseError(response.text or f"HTTP {status}")


def _parse_error_body(response: httpx.Response) -> dict[str, Any]:
    """Extract ``error`` / ``error_description`` from an error response.

    Some servers only send ``errorMessage``; it is used as the description
    when ``error_description`` is missing.
    """
    try:
        data = response.json()
    except ValueError:
        return {"error_description": "Bad JSON in error response from the authorization server"}
    if not isinstance(data, dict):
        return {"error_description": str(data)}
    if not data.get("error_description") and data.get("errorMessage"):
        data["error_description"] = data["errorMessage"]
    return data


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()

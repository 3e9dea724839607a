"""Authenticated request dispatch with a bounded fallback cascade.

:class:`RequestDispatcher` sends a caller-built :class:`httpx.Request` to
a connection. For the ``local`` connection the request goes out once,
unauthenticated. For every other connection the dispatcher walks these
states and stops at the first success or terminal failure:

1. **Cached access token** -- send with the cached ``access_token``.
2. **Refresh token** -- exchange the cached ``refresh_token`` for new
   tokens and resend.
3. **Cached credentials** -- re-authenticate with the password cached for
   the connection's username and resend. No password ends the cascade
   with :class:`~connctl.exceptions.NoPasswordError`; a rejected password
   with :class:`~connctl.exceptions.AuthFailedError`.
4. **Exhausted** -- the last resend failed too:
   :class:`~connctl.exceptions.AuthExhaustedError`.

An attempt succeeds when the transport succeeds and the status differs
from the login redirect status. The auth proxy in front of the service
answers a rejected bearer token with a redirect to its login page (302 by
default) instead of 401, so that status is configurable through
:attr:`~connctl.models.Settings.login_redirect_status`.

The cascade sends the request at most three times and calls
:meth:`~connctl.auth.session.AuthSession.authenticate` at most once.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from connctl.auth.credential_store import CredentialStore
from connctl.auth.session import AuthSession
from connctl.connections import ConnectionRegistry
from connctl.exceptions import (
    AuthError,
    AuthExhaustedError,
    AuthFailedError,
    KeyringError,
    LocalTransportError,
    NoPasswordError,
    TransportError,
)
from connctl.models import (
    ACCESS_TOKEN,
    LOCAL_CONNECTION_ID,
    REFRESH_TOKEN,
    Connection,
    Settings,
)
from connctl.output import get_output

_DEFAULTS = Settings()


class RequestDispatcher:
    """Send requests to connections, authenticating as needed.

    Args:
        http_client: Client used for every network call; its timeout applies.
        registry: Connection lookup.
        store: Cached tokens and passwords.
        session: Token grants. Built from the other arguments when omitted.
        login_redirect_status: Status code meaning "bearer token rejected".
        local_url: Base URL used by :meth:`build_request` for ``local``.

    Example::

        dispatcher = RequestDispatcher(client, registry, store)
        request = dispatcher.build_request("K3X9Q2", "GET", "/api/v1/projects")
        response = dispatcher.dispatch(request, "K3X9Q2")
    """

    def __init__(
        self,
        http_client: httpx.Client,
        registry: ConnectionRegistry,
        store: CredentialStore,
        session: Optional[AuthSession] = None,
        login_redirect_status: int = _DEFAULTS.login_redirect_status,
        local_url: str = _DEFAULTS.local_url,
    ) -> None:
        self._http = http_client
        self._registry = registry
        self._store = store
        self._session = session or AuthSession(http_client, registry, store)
        self._login_redirect_status = login_redirect_status
        self._local_url = local_url.rstrip("/")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: httpx.Client,
        registry: ConnectionRegistry,
        store: CredentialStore,
        session: Optional[AuthSession] = None,
    ) -> RequestDispatcher:
        return cls(
            http_client,
            registry,
            store,
            session=session,
            login_redirect_status=settings.login_redirect_status,
            local_url=settings.local_url,
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def build_request(
        self,
        connection_id: str,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Request:
        """Build a request for *path* relative to the connection's base URL.

        Keyword arguments (``params``, ``json``, ``content``, ``headers`` ...)
        are forwarded to :meth:`httpx.Client.build_request`.
        """
        if _is_local(connection_id):
            base = self._local_url
        else:
            base = self._registry.get_by_id(connection_id).url
        return self._http.build_request(method.upper(), f"{base}{path}", **kwargs)

    def dispatch(self, request: httpx.Request, connection_id: str) -> httpx.Response:
        """Send *request* to *connection_id*, authenticating as needed.

        Returns:
            The first successful :class:`httpx.Response`. For ``local`` this
            is whatever the server answered, whatever its status.

        Raises:
            LocalTransportError: ``local`` could not be reached.
            ConnectionNotFoundError: The connection id is unknown.
            NoPasswordError: Re-authentication needed but no password cached.
            AuthFailedError: The cached password was rejected.
            AuthExhaustedError: Every authentication method failed.
            KeyringError: New tokens could not be stored.
        """
        output = get_output()
        output.debug(f"Request URL: {request.method} {request.url}")
        # Buffer the body so the request can be resent.
        request.read()

        if _is_local(connection_id):
            try:
                response = self._http.send(request)
            except httpx.HTTPError as exc:
                raise LocalTransportError(
                    f"Unable to reach the local deployment at {request.url}: {exc}"
                ) from exc
            output.debug(f"Received HTTP status code: {response.status_code}")
            return response

        connection = self._registry.get_by_id(connection_id)

        # 1. Cached access token
        access_token = self._cached(connection, ACCESS_TOKEN)
        if access_token is None:
            output.debug("Access token not found in keychain")
        else:
            output.debug("Access token found in keychain, trying request")
            response = self._attempt(request, access_token)
            if response is not None:
                return response

        # 2. Refresh token
        refresh_token = self._cached(connection, REFRESH_TOKEN)
        if refresh_token is None:
            output.debug("Refresh token not found in keychain")
        else:
            output.debug("Refreshing the access token with the cached refresh token")
            try:
                tokens = self._session.refresh_access_token(connection, refresh_token)
            except AuthError as exc:
                output.debug(f"Failed refreshing access token {exc.op}: {exc.message}")
            else:
                output.debug("New access token received, retrying the request")
                response = self._attempt(request, tokens.access_token)
                if response is not None:
                    return response

        # 3. Re-authenticate with cached credentials
        output.debug("Re-authenticating using cached credentials from the keychain")
        password = self._cached(connection, connection.username) if connection.username else None
        if password is None:
            raise NoPasswordError()

        try:
            tokens = self._session.authenticate(
                connection.id,
                host=connection.auth_url,
                realm=connection.realm,
                client_id=connection.client_id,
                username=connection.username,
                password=password,
            )
        except AuthError as exc:
            output.debug("Bailing out, user can not authenticate")
            raise AuthFailedError(exc) from exc

        output.debug("Retrying the request with the new access token")
        response = self._attempt(request, tokens.access_token)
        if response is not None:
            return response

        # 4. Exhausted
        output.debug("No other methods of authentication left to try")
        raise AuthExhaustedError()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _cached(self, connection: Connection, principal: str) -> Optional[str]:
        try:
            return self._store.find(connection.id, principal)
        except KeyringError as exc:
            get_output().debug(f"Keyring lookup of {principal} failed: {exc.message}")
            return None

    def _attempt(self, request: httpx.Request, access_token: str) -> Optional[httpx.Response]:
        """Send a copy of *request* with *access_token*; ``None`` means try the next state."""
        try:
            response = self._send(request, access_token)
        except TransportError as exc:
            get_output().debug(f"Request failed: {exc.message}")
            return None
        get_output().debug(f"Received HTTP status code: {response.status_code}")
        if response.status_code == self._login_redirect_status:
            response.close()
            return None
        return response

    def _send(self, request: httpx.Request, access_token: str) -> httpx.Response:
        """Send a fresh copy of *request* carrying only this attempt's auth headers."""
        headers = request.headers.copy()
        headers["Authorization"] = f"Bearer {access_token}"
        headers["Cache-Control"] = "no-cache"
        attempt = httpx.Request(
            request.method,
            request.url,
            headers=headers,
            content=request.content,
            extensions=request.extensions,
        )
        try:
            return self._http.send(attempt)
        except httpx.HTTPError as exc:
            raise TransportError(str(exc)) from exc


def _is_local(connection_id: str) -> bool:
    return connection_id.strip().lower() == LOCAL_CONNECTION_ID

"""Canonical Pydantic models shared across connctl modules.

**Persisted models** -- serialised as JSON in the user's config directory:
    :class:`Connection` and :class:`ConnectionConfig` (the connection file),
    :class:`KeyringSecret` (records of the insecure keyring file).

**Wire models** -- parsed from remote services:
    :class:`AuthToken` (authorization server token endpoint) and
    :class:`GatekeeperEnvironment` (gatekeeper discovery endpoint).

**Runtime settings** -- :class:`Settings`, resolved once per process by
:func:`~connctl.config.load_settings`.

On-disk key names are short lower-case words (``auth``, ``clientid``,
``schemaversion``); the models expose snake_case attributes and map them
with aliases. Always dump with ``by_alias=True`` when writing files.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

LOCAL_CONNECTION_ID = "local"
"""Id of the reserved, unauthenticated connection that always exists."""

LOCAL_CONNECTION_LABEL = "Codewind local connection"

CONNECTIONS_SCHEMA_VERSION = 1
"""Current version of the connection file layout.

Increment together with a new entry in
:data:`connctl.connections.migrations.MIGRATIONS`.
"""

KEYRING_SERVICE_PREFIX = "org.eclipse.codewind"
"""Prefix of keyring service names; one service per connection."""

ACCESS_TOKEN = "access_token"
REFRESH_TOKEN = "refresh_token"


# --- Connection file ---


class Connection(BaseModel):
    """A named target deployment plus its discovered authorization parameters.

    ``auth_url``, ``realm`` and ``client_id`` are filled in from the
    deployment's gatekeeper environment endpoint when the connection is
    added or updated; they are empty for the ``local`` connection.

    Unknown keys found on disk are preserved so that a file written by a
    newer release survives a round-trip through an older one.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    label: str = ""
    url: str = ""
    auth_url: str = Field(default="", alias="auth")
    realm: str = ""
    client_id: str = Field(default="", alias="clientid")
    username: str = ""

    @property
    def is_local(self) -> bool:
        """Whether this is the reserved ``local`` connection."""
        return self.id.lower() == LOCAL_CONNECTION_ID


def local_connection() -> Connection:
    """Return the default entry for the ``local`` deployment."""
    return Connection(id=LOCAL_CONNECTION_ID, label=LOCAL_CONNECTION_LABEL)


class ConnectionConfig(BaseModel):
    """The single persisted connection document.

    Example (as stored on disk)::

        {
          "schemaversion": 1,
          "active": "local",
          "connections": [
            {"id": "local", "label": "Codewind local connection", "url": "", ...}
          ]
        }
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    schema_version: int = Field(default=0, alias="schemaversion")
    active: str = LOCAL_CONNECTION_ID
    connections: list[Connection] = Field(default_factory=list)

    @model_validator(mode="after")
    def _single_local(self) -> ConnectionConfig:
        locals_ = [c for c in self.connections if c.is_local]
        if len(locals_) > 1:
            raise ValueError(f"Duplicate {LOCAL_CONNECTION_ID!r} connection entries")
        return self

    def find(self, connection_id: str) -> Optional[Connection]:
        """Return the connection whose id matches case-insensitively, if any."""
        wanted = connection_id.strip().lower()
        for connection in self.connections:
            if connection.id.lower() == wanted:
                return connection
        return None


def default_connection_config() -> ConnectionConfig:
    """Return the document written on first run and by ``reset``."""
    return ConnectionConfig(
        schema_version=CONNECTIONS_SCHEMA_VERSION,
        active=LOCAL_CONNECTION_ID,
        connections=[local_connection()],
    )


# --- Insecure keyring file ---


class KeyringSecret(BaseModel):
    """One record of the insecure keyring file.

    ``service`` is ``<prefix>.<lowercased connection id>`` and ``username``
    is the lowercased principal, matching the OS keyring addressing.
    """

    service: str
    username: str
    password: str


# --- Remote payloads ---


class AuthToken(BaseModel):
    """Token response from the authorization server.

    Never persisted as a whole: only ``access_token`` and
    ``refresh_token`` are written to the credential store.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str = ""
    expires_in: int = 0
    token_type: str = ""
    scope: str = ""


class GatekeeperEnvironment(BaseModel):
    """Authorization parameters reported by a deployment's gatekeeper."""

    model_config = ConfigDict(extra="ignore")

    auth_url: str = ""
    realm: str = ""
    client_id: str = ""


# --- Runtime settings ---


class Settings(BaseModel):
    """Process-wide settings resolved from CLI flags, environment, and defaults.

    The values are passed explicitly to the objects that need them
    (:class:`~connctl.auth.credential_store.CredentialStore`,
    :class:`~connctl.client.dispatcher.RequestDispatcher`) rather than read
    from module globals.
    """

    insecure_keyring: bool = Field(
        default=False,
        description="Store secrets in a plain JSON file instead of the OS keyring",
    )
    login_redirect_status: int = Field(
        default=302,
        description="Status the auth proxy returns instead of 401 for a rejected bearer token",
    )
    timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    local_url: str = Field(
        default="http://127.0.0.1:9090",
        description="Base URL of the local deployment",
    )
    keyring_service_prefix: str = Field(
        default=KEYRING_SERVICE_PREFIX,
        description="Service name prefix for keyring entries",
    )

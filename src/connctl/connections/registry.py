"""Persisted connection registry.

The registry owns ``connections.json``: an ordered list of
:class:`~connctl.models.Connection` records plus a schema version and the
id of the active connection. Every mutation follows the same cycle:

1. load the complete document from disk,
2. change it in memory,
3. rewrite the whole file atomically.

There is no locking. Independently launched processes that mutate the file
concurrently resolve to "last writer wins", never to a corrupted file.

The ``local`` connection is seeded on first run and is protected: it can be
neither updated nor removed, and :meth:`ConnectionRegistry.reset` restores
a document containing only that entry.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
from pydantic import ValidationError

from connctl.config import atomic_write, get_connections_path
from connctl.connections import gatekeeper
from connctl.connections.migrations import apply_migrations
from connctl.exceptions import (
    OP_FILE_LOAD,
    OP_FILE_PARSE,
    OP_FILE_WRITE,
    OP_SCHEMA_UPDATE,
    ConnectionConflictError,
    ConnectionFileError,
    ConnectionNotFoundError,
    ConnectionProtectedError,
)
from connctl.models import (
    LOCAL_CONNECTION_ID,
    Connection,
    ConnectionConfig,
    GatekeeperEnvironment,
    default_connection_config,
    local_connection,
)
from connctl.output import get_output

Discoverer = Callable[[httpx.Client, str], GatekeeperEnvironment]


def _base36(value: int) -> str:
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
    return out or "0"


def generate_connection_id(taken: set[str], clock: Callable[[], float] = time.time) -> str:
    """Return a new upper-case id derived from the current time in milliseconds.

    The id is the base-36 rendering of the millisecond timestamp; when it
    collides with an id in *taken* (compared lower-case) the timestamp is
    bumped until it does not.
    """
    stamp = int(clock() * 1000)
    candidate = _base36(stamp)
    while candidate.lower() in taken:
        stamp += 1
        candidate = _base36(stamp)
    return candidate


def _is_local(connection_id: str) -> bool:
    return connection_id.strip().lower() == LOCAL_CONNECTION_ID


def _seed_local(raw: dict[str, Any]) -> bool:
    """Insert the ``local`` entry at the head of *raw* if it has none."""
    entries = raw.get("connections")
    if entries is None:
        entries = raw["connections"] = []
    if not isinstance(entries, list):
        return False
    for entry in entries:
        if isinstance(entry, dict) and _is_local(str(entry.get("id", ""))):
            return False
    entries.insert(0, local_connection().model_dump(mode="json", by_alias=True))
    return True


class ConnectionRegistry:
    """Create, look up, and modify the persisted connections.

    Args:
        http_client: Client used for gatekeeper discovery in :meth:`add` and
            :meth:`update`. Required only for those two operations.
        path: Location of the connection file. Defaults to
            :func:`~connctl.config.get_connections_path`.
        discover: Discovery function, by default
            :func:`connctl.connections.gatekeeper.get_environment`.

    Example::

        registry = ConnectionRegistry(http_client=client)
        registry.initialize()
        conn = registry.add("staging", "https://cw.example.com", "dev")
        registry.get_by_id(conn.id).realm
    """

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        path: Optional[Path] = None,
        discover: Discoverer = gatekeeper.get_environment,
    ) -> None:
        self._http_client = http_client
        self._path = path
        self._discover = discover

    @property
    def path(self) -> Path:
        """Filesystem path of the connection file."""
        if self._path is None:
            self._path = get_connections_path()
        return self._path

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def initialize(self) -> None:
        """Create the connection file if absent, otherwise migrate it.

        Safe to call on every process start: an up-to-date file is read but
        never rewritten. A document without a ``local`` entry gets one at
        the head of its list.

        Raises:
            ConnectionFileError: If the file cannot be read or written, or
                ``con_parse`` if it holds more than one ``local`` entry.
        """
        if not self.path.is_file():
            get_output().debug(f"Creating connection file at {self.path}")
            self.reset()
            return

        raw = self._read_raw()
        migrated, changed = apply_migrations(raw)
        if changed:
            get_output().debug(
                f"Upgraded connection file to schema version {migrated['schemaversion']}"
            )
        seeded = _seed_local(migrated)
        if seeded:
            get_output().debug(f"Restored missing local connection in {self.path}")
        self._validate(migrated)
        if changed or seeded:
            self._write_text(json.dumps(migrated, indent="\t") + "\n", op=OP_SCHEMA_UPDATE)

    def reset(self) -> None:
        """Overwrite the file with the default single-``local`` document."""
        self.save(default_connection_config())

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def load(self) -> ConnectionConfig:
        """Load and validate the whole connection document.

        Raises:
            ConnectionFileError: ``con_load`` if the file cannot be read,
                ``con_parse`` if it is not a valid connection document.
        """
        return self._validate(self._read_raw())

    def list(self) -> list[Connection]:
        """Return every connection, in file order."""
        return self.load().connections

    def get_by_id(self, connection_id: str) -> Connection:
        """Case-insensitive lookup of a single connection.

        Raises:
            ConnectionNotFoundError: If no connection has that id.
        """
        connection = self.load().find(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(f"Connection {connection_id.upper()} not found")
        return connection

    def get_active(self) -> Connection:
        """Return the active connection, falling back to ``local``."""
        config = self.load()
        active = config.find(config.active)
        if active is not None:
            return active
        return self.get_by_id(LOCAL_CONNECTION_ID)

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def add(self, label: str, url: str, username: str = "") -> Connection:
        """Register a new remote connection.

        The label and url must not already be used by another non-local
        connection (compared case-insensitively). The authorization
        parameters are discovered from the deployment's gatekeeper.

        Returns:
            The stored connection, including its generated id.

        Raises:
            ConnectionConflictError: If the label or url is already in use.
            EnvironmentDiscoveryError: If discovery fails.
            ConnectionFileError: On persistence failures.
        """
        label, url, username = _clean(label), _clean_url(url), _clean(username)
        config = self.load()

        for existing in config.connections:
            if existing.is_local:
                continue
            if existing.label.lower() == label.lower() or existing.url.lower() == url.lower():
                raise ConnectionConflictError(
                    f"Connection ID: {existing.id} already exists. Use the update command to modify"
                )

        taken = {c.id.lower() for c in config.connections}
        connection = self._build(generate_connection_id(taken), label, url, username)
        config.connections.append(connection)
        self.save(config)
        get_output().debug(f"Added connection {connection.id} ({connection.url})")
        return connection

    def update(self, connection_id: str, label: str, url: str, username: str = "") -> Connection:
        """Replace an existing remote connection, keeping its list position.

        Authorization parameters are re-discovered exactly as in :meth:`add`.

        Raises:
            ConnectionProtectedError: If *connection_id* is ``local``.
            ConnectionNotFoundError: If the id is unknown.
            EnvironmentDiscoveryError: If discovery fails.
            ConnectionFileError: On persistence failures.
        """
        if _is_local(connection_id):
            raise ConnectionProtectedError(
                "Local is a required connection that must not be modified"
            )
        label, url, username = _clean(label), _clean_url(url), _clean(username)
        config = self.load()
        existing = config.find(connection_id)
        if existing is None:
            raise ConnectionNotFoundError(f"Connection {connection_id.upper()} not found")

        connection = self._build(existing.id, label, url, username, extra=existing.model_extra)
        index = config.connections.index(existing)
        config.connections[index] = connection
        self.save(config)
        get_output().debug(f"Updated connection {connection.id}")
        return connection

    def remove(self, connection_id: str) -> None:
        """Delete every entry whose id matches *connection_id*.

        If the removed connection was active, ``local`` becomes active.

        Raises:
            ConnectionProtectedError: If *connection_id* is ``local``.
            ConnectionNotFoundError: If the id is unknown.
            ConnectionFileError: On persistence failures.
        """
        if _is_local(connection_id):
            raise ConnectionProtectedError(
                "Local is a required connection and must not be removed"
            )
        config = self.load()
        wanted = connection_id.strip().lower()
        remaining = [c for c in config.connections if c.id.lower() != wanted]
        if len(remaining) == len(config.connections):
            raise ConnectionNotFoundError(f"Connection {connection_id.upper()} not found")

        config.connections = remaining
        if config.active.lower() == wanted:
            config.active = LOCAL_CONNECTION_ID
        self.save(config)
        get_output().debug(f"Removed connection {connection_id.upper()}")

    def set_active(self, connection_id: str) -> Connection:
        """Mark a connection as the default target for commands.

        Raises:
            ConnectionNotFoundError: If the id is unknown.
        """
        config = self.load()
        connection = config.find(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(f"Connection {connection_id.upper()} not found")
        config.active = connection.id
        self.save(config)
        return connection

    def save(self, config: ConnectionConfig) -> None:
        """Rewrite the whole connection file from *config*.

        Raises:
            ConnectionFileError: ``con_parse`` if *config* cannot be
                serialised, ``con_write`` if the file cannot be written.
        """
        try:
            text = json.dumps(config.model_dump(mode="json", by_alias=True), indent="\t")
        except (TypeError, ValueError) as exc:
            raise ConnectionFileError(str(exc), op=OP_FILE_PARSE) from exc
        self._write_text(text + "\n")

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _build(
        self,
        connection_id: str,
        label: str,
        url: str,
        username: str,
        extra: Optional[dict[str, Any]] = None,
    ) -> Connection:
        if self._http_client is None:
            raise RuntimeError("ConnectionRegistry needs an http_client to discover auth settings")
        environment = self._discover(self._http_client, url)
        # Unknown keys of the record being replaced are kept.
        return Connection(
            **(extra or {}),
            id=connection_id,
            label=label,
            url=url,
            auth_url=environment.auth_url,
            realm=environment.realm,
            client_id=environment.client_id,
            username=username,
        )

    def _validate(self, raw: dict[str, Any]) -> ConnectionConfig:
        try:
            return ConnectionConfig.model_validate(raw)
        except ValidationError as exc:
            raise ConnectionFileError(
                f"Invalid connection file at {self.path}: {exc}", op=OP_FILE_PARSE
            ) from exc

    def _read_raw(self) -> dict[str, Any]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConnectionFileError(
                f"Unable to read connection file {self.path}: {exc}", op=OP_FILE_LOAD
            ) from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConnectionFileError(
                f"Invalid JSON in connection file {self.path}: {exc}", op=OP_FILE_PARSE
            ) from exc
        if not isinstance(data, dict):
            raise ConnectionFileError(
                f"Connection file {self.path} must contain a JSON object", op=OP_FILE_PARSE
            )
        return data

    def _write_text(self, text: str, op: str = OP_FILE_WRITE) -> None:
        try:
            atomic_write(self.path, text)
        except OSError as exc:
            raise ConnectionFileError(
                f"Unable to write connection file {self.path}: {exc}", op=op
            ) from exc


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _clean_url(value: Optional[str]) -> str:
    return _clean(value).removesuffix("/")

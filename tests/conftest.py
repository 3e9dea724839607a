"""Shared test fixtures for connctl.

Provides isolated config directories, an in-memory keyring, output state
management, and helpers for building HTTP clients on top of
:class:`httpx.MockTransport`. These fixtures are automatically discovered
by pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import httpx
import keyring
import keyring.backend
import keyring.errors
import pytest

from connctl.auth import AuthSession, CredentialStore
from connctl.connections import ConnectionRegistry
from connctl.models import GatekeeperEnvironment
from connctl.output import OutputFormat, OutputManager, reset_output, set_output

Handler = Callable[[httpx.Request], httpx.Response]


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; CliRunner swaps those streams per invocation.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path,
    forces XDG resolution, and clears all CONNCTL_* environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("connctl.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "CONNCTL_INSECURE_KEYRING",
        "CONNCTL_LOGIN_REDIRECT_STATUS",
        "CONNCTL_TIMEOUT",
        "CONNCTL_LOCAL_URL",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Keyring
# ---------------------------------------------------------------------------


class MemoryKeyring(keyring.backend.KeyringBackend):
    """Dict-backed keyring so tests never touch the real OS keyring."""

    priority = 1

    def __init__(self) -> None:
        super().__init__()
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.passwords.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.passwords[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise keyring.errors.PasswordDeleteError("not found") from None


@pytest.fixture(autouse=True)
def memory_keyring() -> MemoryKeyring:
    """Install an in-memory keyring backend for the duration of a test."""
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def json_response(data: Any, status_code: int = 200) -> httpx.Response:
    """Build an httpx.Response with a JSON body."""
    return httpx.Response(
        status_code=status_code,
        headers={"content-type": "application/json"},
        content=json.dumps(data).encode(),
    )


def token_body(access: str = "access-1", refresh: str = "refresh-1") -> dict[str, Any]:
    return {
        "access_token": access,
        "refresh_token": refresh,
        "expires_in": 300,
        "token_type": "bearer",
        "scope": "profile",
    }


ENVIRONMENT = GatekeeperEnvironment(
    auth_url="https://auth.example.com",
    realm="codewind",
    client_id="codewind-backend",
)


def static_discover(client: httpx.Client, url: str) -> GatekeeperEnvironment:
    """Discovery stub that always reports :data:`ENVIRONMENT`."""
    return ENVIRONMENT


@pytest.fixture
def make_client() -> Callable[[Handler], httpx.Client]:
    """Factory for clients backed by an ``httpx.MockTransport``."""
    clients: list[httpx.Client] = []

    def _make(handler: Handler) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=False)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def registry(isolated_config: Path) -> ConnectionRegistry:
    """An initialised registry whose discovery always succeeds."""
    reg = ConnectionRegistry(http_client=httpx.Client(), discover=static_discover)
    reg.initialize()
    return reg


@pytest.fixture
def store() -> CredentialStore:
    """A credential store on the in-memory keyring."""
    return CredentialStore()


@pytest.fixture
def session_factory(
    registry: ConnectionRegistry, store: CredentialStore
) -> Callable[[httpx.Client], AuthSession]:
    def _make(client: httpx.Client) -> AuthSession:
        return AuthSession(client, registry, store)

    return _make


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True, no_color=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager for the test."""
    output = OutputManager(format=OutputFormat.JSON, no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()

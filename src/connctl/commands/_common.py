"""Shared plumbing for CLI commands.

Commands never build clients, stores or registries themselves; they open
:func:`open_services`, which wires everything from the
:class:`~connctl.models.Settings` stored on the Typer context by
:func:`~connctl.app.main_callback`, initialises the connection file, and
turns any :class:`~connctl.exceptions.ConnctlError` into a rendered error
plus the matching exit code.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import httpx
import typer

from connctl.auth import AuthSession, CredentialStore
from connctl.client import RequestDispatcher
from connctl.config import load_settings
from connctl.connections import ConnectionRegistry
from connctl.exceptions import ConnctlError
from connctl.models import Settings
from connctl.output import get_output


@dataclass
class Services:
    """Everything a command needs, sharing one HTTP client."""

    settings: Settings
    http_client: httpx.Client
    registry: ConnectionRegistry
    store: CredentialStore
    session: AuthSession
    dispatcher: RequestDispatcher


def make_http_client(settings: Settings) -> httpx.Client:
    """Create the process HTTP client.

    Redirects are not followed: a redirect to the login page is how the
    auth proxy reports a rejected bearer token.
    """
    return httpx.Client(timeout=settings.timeout, follow_redirects=False)


def get_settings(ctx: typer.Context) -> Settings:
    obj = ctx.find_root().obj or {}
    settings = obj.get("settings")
    if settings is None:
        settings = load_settings()
    return settings


@contextmanager
def reporting_errors() -> Iterator[None]:
    """Render a :class:`ConnctlError` and exit with its code."""
    try:
        yield
    except ConnctlError as exc:
        get_output().render_error(exc)
        raise typer.Exit(code=exc.exit_code) from None


@contextmanager
def open_services(ctx: typer.Context) -> Iterator[Services]:
    """Build the registry, credential store, auth session and dispatcher."""
    with reporting_errors():
        settings = get_settings(ctx)
        with make_http_client(settings) as client:
            registry = ConnectionRegistry(http_client=client)
            registry.initialize()
            store = CredentialStore.from_settings(settings)
            session = AuthSession(client, registry, store)
            dispatcher = RequestDispatcher.from_settings(
                settings, client, registry, store, session=session
            )
            yield Services(settings, client, registry, store, session, dispatcher)


def ok(message: str, **extra: str) -> dict[str, str]:
    """Status payload printed by mutating commands."""
    return {"status": "OK", "status_message": message, **extra}

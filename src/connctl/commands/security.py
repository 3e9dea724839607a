"""Security commands -- tokens and cached credentials.

Provides two sub-command groups:

``connctl sectoken``
    ``get`` runs a password grant, ``refresh`` exchanges the cached
    refresh token. Both print the resulting token document.

``connctl seckeyring``
    ``update`` caches a password for a connection, ``validate`` checks that
    one is cached. Passwords are never printed.
"""

from __future__ import annotations

from typing import Optional

import typer

from connctl.commands._common import ok, open_services
from connctl.output import format_response, success

sectoken_app = typer.Typer(no_args_is_help=True)
seckeyring_app = typer.Typer(no_args_is_help=True)


@sectoken_app.command("get")
def sectoken_get(
    ctx: typer.Context,
    conid: Optional[str] = typer.Option(None, "--conid", help="Connection to authenticate against."),
    host: Optional[str] = typer.Option(None, "--host", help="Authorization server URL."),
    realm: Optional[str] = typer.Option(None, "--realm", help="Authorization realm."),
    client: Optional[str] = typer.Option(None, "--client", help="OAuth2 client id."),
    username: Optional[str] = typer.Option(None, "--username", help="Account name."),
    password: Optional[str] = typer.Option(
        None, "--password", help="Account password. Defaults to the cached one."
    ),
    realm_override: Optional[str] = typer.Option(
        None, "--realm-override", help="Authenticate against this realm instead."
    ),
    client_override: Optional[str] = typer.Option(
        None, "--client-override", help="Authenticate as this client instead."
    ),
) -> None:
    """Obtain an access token with a password grant.

    With ``--conid`` the connection's stored settings are used and the
    resulting tokens are cached. Without it, ``--host``, ``--realm``,
    ``--client`` and ``--username`` are all required.

    Example::

        connctl sectoken get --conid K3X9Q2 --password s3cret
    """
    with open_services(ctx) as services:
        token = services.session.authenticate(
            conid,
            host=host,
            realm=realm,
            client_id=client,
            username=username,
            password=password,
            realm_override=realm_override,
            client_override=client_override,
        )
    format_response(token.model_dump())


@sectoken_app.command("refresh")
def sectoken_refresh(
    ctx: typer.Context,
    conid: str = typer.Option(..., "--conid", help="Connection whose tokens to refresh."),
) -> None:
    """Exchange the cached refresh token for a new access token."""
    with open_services(ctx) as services:
        token = services.session.refresh_tokens(conid)
    format_response(token.model_dump())


@seckeyring_app.command("update")
def seckeyring_update(
    ctx: typer.Context,
    conid: str = typer.Option(..., "--conid", help="Connection the password belongs to."),
    username: str = typer.Option(..., "--username", help="Account name."),
    password: str = typer.Option(
        ..., "--password", prompt=True, hide_input=True, help="Account password."
    ),
) -> None:
    """Cache a password for a connection."""
    with open_services(ctx) as services:
        connection = services.registry.get_by_id(conid)
        services.store.put(connection.id, username, password)
    success(f"Password stored for {username.strip().lower()} on {connection.id}")
    format_response(ok("Password stored"))


@seckeyring_app.command("validate")
def seckeyring_validate(
    ctx: typer.Context,
    conid: str = typer.Option(..., "--conid", help="Connection the password belongs to."),
    username: str = typer.Option(..., "--username", help="Account name."),
) -> None:
    """Check that a password is cached, without revealing it."""
    with open_services(ctx) as services:
        connection = services.registry.get_by_id(conid)
        services.store.get(connection.id, username)
    success(f"Password found for {username.strip().lower()} on {connection.id}")
    format_response(ok("Password found"))

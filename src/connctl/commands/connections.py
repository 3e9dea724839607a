"""Connection commands -- manage the list of target deployments.

Provides the ``connctl connections`` sub-command group. Every command
works on ``connections.json`` through
:class:`~connctl.connections.ConnectionRegistry`; ``add`` and ``update``
also query the deployment's gatekeeper for its authorization settings.

Typical workflow::

    connctl connections add --label staging --url https://cw.example.com --username dev
    connctl connections list
    connctl connections use K3X9Q2
    connctl connections remove K3X9Q2
"""

from __future__ import annotations

import typer

from connctl.commands._common import ok, open_services
from connctl.exceptions import KeyringError
from connctl.models import ACCESS_TOKEN, REFRESH_TOKEN
from connctl.output import format_response, info, print_table, success, warning

connections_app = typer.Typer(no_args_is_help=True)


@connections_app.command("add")
def connections_add(
    ctx: typer.Context,
    label: str = typer.Option(..., "--label", help="Display name of the connection."),
    url: str = typer.Option(..., "--url", help="Base URL of the remote deployment."),
    username: str = typer.Option("", "--username", help="User to authenticate as."),
) -> None:
    """Add a remote connection and print its generated id.

    Example::

        connctl connections add --label staging --url https://cw.example.com --username dev
    """
    with open_services(ctx) as services:
        connection = services.registry.add(label, url, username)
    success(f"Connection {connection.id} added successfully")
    format_response(ok("Connection added", id=connection.id))


@connections_app.command("update")
def connections_update(
    ctx: typer.Context,
    conid: str = typer.Option(..., "--conid", help="Id of the connection to update."),
    label: str = typer.Option(..., "--label", help="New display name."),
    url: str = typer.Option(..., "--url", help="New base URL."),
    username: str = typer.Option("", "--username", help="User to authenticate as."),
) -> None:
    """Replace the details of an existing remote connection."""
    with open_services(ctx) as services:
        connection = services.registry.update(conid, label, url, username)
    success(f"Connection {connection.id} updated successfully")
    format_response(ok("Connection updated", id=connection.id))


@connections_app.command("get")
def connections_get(
    ctx: typer.Context,
    conid: str = typer.Argument(help="Connection id (case-insensitive)."),
) -> None:
    """Print a single connection."""
    with open_services(ctx) as services:
        connection = services.registry.get_by_id(conid)
    format_response(connection.model_dump(mode="json", by_alias=True))


@connections_app.command("list")
def connections_list(ctx: typer.Context) -> None:
    """List all connections, marking the active one."""
    with open_services(ctx) as services:
        config = services.registry.load()
    rows = [
        [
            ("* " if c.id.lower() == config.active.lower() else "  ") + c.id,
            c.label,
            c.url,
            c.username,
        ]
        for c in config.connections
    ]
    print_table(["ID", "Label", "URL", "Username"], rows, title="Connections")


@connections_app.command("use")
def connections_use(
    ctx: typer.Context,
    conid: str = typer.Argument(help="Connection id to make active."),
) -> None:
    """Make a connection the default target of ``connctl request``."""
    with open_services(ctx) as services:
        connection = services.registry.set_active(conid)
    success(f"Active connection set to {connection.id}")


@connections_app.command("remove")
def connections_remove(
    ctx: typer.Context,
    conid: str = typer.Argument(help="Id of the connection to remove."),
) -> None:
    """Remove a connection and the secrets cached for it.

    Secrets that cannot be deleted are reported as warnings; the
    connection itself is removed regardless.
    """
    warnings: list[str] = []
    with open_services(ctx) as services:
        connection = services.registry.get_by_id(conid)
        services.registry.remove(conid)
        principals = [p for p in (connection.username, ACCESS_TOKEN, REFRESH_TOKEN) if p]
        for principal in principals:
            try:
                services.store.delete(connection.id, principal)
            except KeyringError as exc:
                warnings.append(exc.message)

    for message in warnings:
        warning(message)
    success("Connection removed successfully")
    format_response({**ok("Connection removed"), "warnings_encountered": warnings})


@connections_app.command("reset")
def connections_reset(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset to a single default ``local`` connection."""
    if not force:
        confirmed = typer.confirm("Remove all connections except local?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()
    with open_services(ctx) as services:
        services.registry.reset()
    success("Connection list reset successfully")
    format_response(ok("Connection list reset"))

"""``connctl request`` -- send an authenticated request to a connection.

The request goes through :class:`~connctl.client.RequestDispatcher`, so an
expired access token is refreshed, or re-minted from the cached password,
without any user interaction.

Examples::

    connctl request GET /api/v1/projects
    connctl request POST /api/v1/projects --conid K3X9Q2 --data '{"name": "demo"}'
    connctl request GET /api/v1/projects -H "Accept: application/json"
"""

from __future__ import annotations

import json
from typing import Any, Optional

import typer

from connctl.client import format_api_response
from connctl.commands._common import open_services
from connctl.output import error


def _parse_headers(values: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            error(f"Invalid header {value!r}, expected 'Name: value'")
            raise typer.Exit(code=2)
        headers[name.strip()] = content.strip()
    return headers


def request_command(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method, e.g. GET or POST."),
    path: str = typer.Argument(help="Path relative to the connection URL, e.g. /api/v1/projects."),
    conid: Optional[str] = typer.Option(
        None, "--conid", help="Target connection. Defaults to the active one."
    ),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="JSON request body."),
    header: list[str] = typer.Option([], "--header", "-H", help="Extra header 'Name: value'."),
    fail: bool = typer.Option(False, "--fail", help="Exit non-zero on HTTP 4xx/5xx."),
) -> None:
    """Send METHOD PATH to a connection and print the response."""
    body = None
    if data is not None:
        try:
            body = json.loads(data)
        except json.JSONDecodeError as exc:
            error(f"Invalid JSON in --data: {exc}")
            raise typer.Exit(code=2) from None

    headers = _parse_headers(header)
    if not path.startswith("/"):
        path = "/" + path

    with open_services(ctx) as services:
        target = conid or services.registry.get_active().id
        kwargs: dict[str, Any] = {"headers": headers}
        if body is not None:
            kwargs["json"] = body
        req = services.dispatcher.build_request(target, method, path, **kwargs)
        response = services.dispatcher.dispatch(req, target)

    format_api_response(response)
    if fail and response.is_error:
        raise typer.Exit(code=1)

"""Gatekeeper environment discovery.

A remote deployment sits behind a gatekeeper proxy that reports which
authorization server, realm and client id it trusts. The connection
registry calls :func:`get_environment` whenever a connection is added or
updated so that users only ever type the deployment URL.
"""

from __future__ import annotations

import httpx
from pydantic import ValidationError

from connctl.exceptions import EnvironmentDiscoveryError
from connctl.models import GatekeeperEnvironment
from connctl.output import get_output

ENVIRONMENT_ROUTE = "/api/v1/gatekeeper/environment"


def get_environment(client: httpx.Client, url: str) -> GatekeeperEnvironment:
    """Fetch the authorization parameters of the deployment at *url*.

    Args:
        client: HTTP client used for the call; its timeout applies.
        url: Base URL of the deployment (no trailing slash).

    Returns:
        The parsed :class:`~connctl.models.GatekeeperEnvironment`.

    Raises:
        EnvironmentDiscoveryError: If the endpoint cannot be reached or does
            not answer with the expected JSON object.
    """
    endpoint = f"{url}{ENVIRONMENT_ROUTE}"
    get_output().debug(f"Discovering auth environment: GET {endpoint}")
    try:
        response = client.get(
            endpoint,
            headers={"Content-Type": "application/json", "Cache-Control": "no-cache"},
        )
    except httpx.HTTPError as exc:
        raise EnvironmentDiscoveryError(f"Unable to reach {endpoint}: {exc}") from exc

    try:
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        return GatekeeperEnvironment.model_validate(data)
    except (ValueError, ValidationError) as exc:
        get_output().debug(f"Bad JSON from {endpoint}: {exc}")
        raise EnvironmentDiscoveryError(
            f"Bad response received. The URL provided {url} should point to the "
            f"gatekeeper service. Check its route {ENVIRONMENT_ROUTE} returns valid JSON"
        ) from exc

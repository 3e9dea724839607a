"""Tests for gatekeeper environment discovery."""

from __future__ import annotations

import httpx
import pytest

from conftest import json_response
from connctl.connections.gatekeeper import ENVIRONMENT_ROUTE, get_environment
from connctl.exceptions import EnvironmentDiscoveryError


class TestGetEnvironment:
    def test_parses_environment(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(
                {
                    "auth_url": "https://auth.example.com",
                    "realm": "codewind",
                    "client_id": "codewind-backend",
                    "ignored": "field",
                }
            )

        env = get_environment(make_client(handler), "https://cw.example.com")

        assert env.auth_url == "https://auth.example.com"
        assert env.realm == "codewind"
        assert env.client_id == "codewind-backend"
        assert str(seen[0].url) == f"https://cw.example.com{ENVIRONMENT_ROUTE}"
        assert seen[0].headers["Cache-Control"] == "no-cache"

    def test_unreachable(self, make_client) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(EnvironmentDiscoveryError) as exc_info:
            get_environment(make_client(handler), "https://cw.example.com")
        assert exc_info.value.op == "con_environment"

    def test_non_json_body(self, make_client) -> None:
        client = make_client(lambda request: httpx.Response(200, text="<html>login</html>"))
        with pytest.raises(EnvironmentDiscoveryError) as exc_info:
            get_environment(client, "https://cw.example.com")
        assert "should point to the gatekeeper service" in exc_info.value.message

    def test_json_array_body(self, make_client) -> None:
        client = make_client(lambda request: json_response([1, 2]))
        with pytest.raises(EnvironmentDiscoveryError):
            get_environment(client, "https://cw.example.com")

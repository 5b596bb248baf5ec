"""Tests for managed identity token acquisition."""

from __future__ import annotations

import httpx
import pytest
from conftest import IDENTITY_ENDPOINT, epoch_in, identity_transport, mock_client

from faas_lifecycle.auth.identity import ManagedIdentityClient
from faas_lifecycle.errors import AuthorizationError, ConfigurationError


class TestFromEnvironment:
    def test_missing_variables_raise(self) -> None:
        with pytest.raises(ConfigurationError, match="Managed Identity"):
            ManagedIdentityClient.from_environment()

    def test_reads_endpoint(self, managed_identity_env: None) -> None:
        client = ManagedIdentityClient.from_environment()
        assert client.endpoint == IDENTITY_ENDPOINT


class TestGetToken:
    @pytest.mark.asyncio
    async def test_sends_resource_and_secret_header(self) -> None:
        calls: list[httpx.Request] = []
        http = httpx.AsyncClient(transport=identity_transport({"https://vault.azure.net": "T1"}, calls=calls))
        client = ManagedIdentityClient(IDENTITY_ENDPOINT, "s3cret", http_client=http)

        token = await client.get_token("https://vault.azure.net")

        assert token.token == "T1"
        assert token.resource == "https://vault.azure.net"
        assert not token.is_expired
        request = calls[0]
        assert request.url.params["api-version"] == "2019-08-01"
        assert request.headers["X-IDENTITY-HEADER"] == "s3cret"

    @pytest.mark.asyncio
    async def test_not_found_maps_to_404(self) -> None:
        http = mock_client(lambda request: httpx.Response(404))
        client = ManagedIdentityClient(IDENTITY_ENDPOINT, "s3cret", http_client=http)
        with pytest.raises(AuthorizationError) as info:
            await client.get_token("https://unknown")
        assert info.value.code == 404

    @pytest.mark.asyncio
    async def test_server_error_keeps_status(self) -> None:
        http = mock_client(lambda request: httpx.Response(503))
        client = ManagedIdentityClient(IDENTITY_ENDPOINT, "s3cret", http_client=http)
        with pytest.raises(AuthorizationError) as info:
            await client.get_token("https://vault.azure.net")
        assert info.value.code == 503

    @pytest.mark.asyncio
    async def test_malformed_payload(self) -> None:
        http = mock_client(lambda request: httpx.Response(200, json={"expires_on": epoch_in(60)}))
        client = ManagedIdentityClient(IDENTITY_ENDPOINT, "s3cret", http_client=http)
        with pytest.raises(AuthorizationError, match="Invalid managed identity response"):
            await client.get_token("https://vault.azure.net")

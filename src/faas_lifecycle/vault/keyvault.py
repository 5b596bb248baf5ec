"""Key Vault secret reads over the REST data plane."""

from __future__ import annotations

import logging

import httpx

from faas_lifecycle.auth.token import AccessToken
from faas_lifecycle.errors import ConfigurationError
from faas_lifecycle.transport import http_session

logger = logging.getLogger(__name__)

VAULT_RESOURCE = "https://vault.azure.net"


class KeyVault:
    """Fetches secrets by their full identifier URL.

    A reference id is the secret identifier, e.g.
    ``https://myvault.vault.azure.net/secrets/db-password``.
    """

    API_VERSION = "7.1"

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._http_client = http_client
        self._token: AccessToken | None = None

    @property
    def resource(self) -> str:
        return VAULT_RESOURCE

    async def bind(self, token: AccessToken) -> None:
        self._token = token

    async def get_secret(self, reference: str) -> str:
        if self._token is None:
            raise ConfigurationError("Key Vault used before a credential was bound.")
        headers = {"Authorization": f"Bearer {self._token.token}"}
        try:
            async with http_session(self._http_client) as client:
                response = await client.get(
                    reference, params={"api-version": self.API_VERSION}, headers=headers
                )
                response.raise_for_status()
                return response.json()["value"]
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404:
                raise ConfigurationError(
                    f"Vault secret '{reference}' not found.", 404, cause=exc
                ) from exc
            raise ConfigurationError(
                f"Exception getting Vault secret '{reference}': {exc.response.reason_phrase}",
                status,
                cause=exc,
            ) from exc
        except httpx.HTTPError as exc:
            raise ConfigurationError(
                f"Exception getting Vault secret '{reference}'.", cause=exc
            ) from exc
        except (KeyError, ValueError) as exc:
            raise ConfigurationError(
                f"Invalid response for Vault secret '{reference}'.", cause=exc
            ) from exc

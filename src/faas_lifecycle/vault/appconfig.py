"""App Configuration key/value reads through the management plane."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from faas_lifecycle.auth.token import AccessToken
from faas_lifecycle.errors import ConfigurationError
from faas_lifecycle.transport import http_session

logger = logging.getLogger(__name__)

MANAGEMENT_RESOURCE = "https://management.azure.com/"
VAULT_REFERENCE_CONTENT_TYPE = "application/vnd.microsoft.appconfig.keyvaultref+json;charset=utf-8"


class AppConfigClient:
    """Looks up a single key under a label in a configuration store."""

    API_VERSION = "2019-10-01"

    def __init__(
        self,
        subscription_id: str,
        resource_group: str,
        store_name: str,
        label: str = "development",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = (
            f"https://management.azure.com/subscriptions/{subscription_id}"
            f"/resourceGroups/{resource_group}"
            f"/providers/Microsoft.AppConfiguration/configurationStores/{store_name}"
            f"/listKeyValue"
        )
        self._label = label
        self._http_client = http_client
        self._token: AccessToken | None = None

    @property
    def label(self) -> str:
        return self._label

    @property
    def url(self) -> str:
        return self._url

    async def bind(self, token: AccessToken) -> None:
        self._token = token

    async def get_key_value(self, key: str) -> dict[str, Any] | None:
        """Return the key/value record for *key*, or ``None`` when absent."""
        if self._token is None:
            raise ConfigurationError("App Configuration used before a credential was bound.")
        headers = {"Authorization": f"Bearer {self._token.token}"}
        body = {"key": key, "label": self._label}
        try:
            async with http_session(self._http_client) as client:
                response = await client.post(
                    self._url,
                    params={"api-version": self.API_VERSION},
                    json=body,
                    headers=headers,
                )
                if response.status_code == 404:
                    logger.debug("App Configuration key=%s label=%s not found", key, self._label)
                    return None
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            raise ConfigurationError(
                f"Exception getting App Configuration '{key}': {exc.response.reason_phrase}",
                exc.response.status_code,
                cause=exc,
            ) from exc
        except httpx.HTTPError as exc:
            raise ConfigurationError(
                f"Exception getting App Configuration '{key}'.", cause=exc
            ) from exc
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid response for App Configuration '{key}'.", cause=exc
            ) from exc

"""HashiCorp Vault secret reads brokered by the platform managed identity.

Pattern: Credential Brokering
------------------------------
The function never holds a Vault token of its own.  Each time the owning
handler refreshes its managed identity credential, the JWT is exchanged for a
short-lived Vault token through Vault's Azure auth method, and every secret
read afterwards uses that token.

  - The Vault role decides which policies the function receives.
  - The Vault token lives no longer than the managed identity token that
    produced it; the handler rebinds on every credential refresh.

A reference id has the form ``path`` or ``path#field``; the field defaults to
``value``.  Secrets are read from a KV version 2 mount.
"""

from __future__ import annotations

import asyncio
import logging

import hvac

from faas_lifecycle.auth.token import AccessToken
from faas_lifecycle.errors import ConfigurationError

logger = logging.getLogger(__name__)

MANAGEMENT_RESOURCE = "https://management.azure.com/"


class HashiCorpVault:
    """Reads KV v2 secrets using a token obtained from Vault's Azure auth method."""

    def __init__(
        self,
        vault_addr: str,
        role: str,
        kv_mount: str = "secret",
        auth_mount: str = "azure",
        resource: str = MANAGEMENT_RESOURCE,
    ) -> None:
        self._vault_addr = vault_addr
        self._role = role
        self._kv_mount = kv_mount
        self._auth_mount = auth_mount
        self._resource = resource
        self._client: hvac.Client | None = None

    @property
    def resource(self) -> str:
        return self._resource

    async def bind(self, token: AccessToken) -> None:
        """Exchange the managed identity JWT for a Vault client token."""
        self._client = await asyncio.to_thread(self._login, token.token)

    async def get_secret(self, reference: str) -> str:
        if self._client is None:
            raise ConfigurationError("HashiCorp Vault used before a credential was bound.")
        return await asyncio.to_thread(self._read, self._client, reference)

    # -- private helpers -----------------------------------------------------

    def _login(self, jwt: str) -> hvac.Client:
        client = hvac.Client(url=self._vault_addr)
        try:
            response = client.auth.azure.login(
                role=self._role,
                jwt=jwt,
                mount_point=self._auth_mount,
            )
        except hvac.exceptions.VaultError as exc:
            raise ConfigurationError(
                f"Vault login failed for role={self._role}: {exc}", cause=exc
            ) from exc

        auth = response.get("auth", {}) if isinstance(response, dict) else {}
        logger.info(
            "Vault login for role=%s, policies=%s, ttl=%ss",
            self._role,
            auth.get("policies", []),
            auth.get("lease_duration", "unknown"),
        )
        return client

    def _read(self, client: hvac.Client, reference: str) -> str:
        path, _, field = reference.partition("#")
        field = field or "value"
        try:
            response = client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self._kv_mount,
                raise_on_deleted_version=True,
            )
        except hvac.exceptions.InvalidPath as exc:
            raise ConfigurationError(f"Vault secret '{reference}' not found.", 404, cause=exc) from exc
        except hvac.exceptions.VaultError as exc:
            raise ConfigurationError(
                f"Exception getting Vault secret '{reference}': {exc}", cause=exc
            ) from exc

        data = response["data"]["data"]
        if field not in data:
            raise ConfigurationError(f"Vault secret '{path}' has no field '{field}'.", 404)
        return data[field]

"""Pluggable configuration backends.

Pattern: Handler Chain
-----------------------
Every setting the library reads goes through a ``PropertyHandler``.  The
plain ``EnvironmentHandler`` reads the process environment; the managed
resource handlers add a remote store behind a managed identity credential;
``CachingHandler`` (see ``faas_lifecycle.config.cache``) wraps any of them.

Contract shared by all handlers:

  - ``initialize`` returns ``True`` only for the first successful call (or
    when forced).  Later calls are no-ops returning ``False``, which is how
    ``Configuration`` tells a cold start from a warm one.
  - ``get_property`` never raises for a missing key; it returns the default.
    Backend failures do raise, as ``ConfigurationError``.
"""

from __future__ import annotations

import abc
import json
import logging
import os
from collections.abc import Callable
from typing import Any

import httpx

from faas_lifecycle.auth.identity import ManagedIdentityClient
from faas_lifecycle.auth.token import AccessToken
from faas_lifecycle.config.property import PropertyKind, to_boolean, to_json, to_number
from faas_lifecycle.errors import ConfigurationError, ValidationError
from faas_lifecycle.vault.appconfig import VAULT_REFERENCE_CONTENT_TYPE, AppConfigClient
from faas_lifecycle.vault.keyvault import VAULT_RESOURCE, KeyVault
from faas_lifecycle.vault.store import SecretStore

logger = logging.getLogger(__name__)

VAULT_REFERENCE_TYPE = "vault.reference"


class PropertyHandler(abc.ABC):
    """Base class for configuration backends."""

    def __init__(self) -> None:
        self._initialized = False

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self, platform_context: Any = None, force: bool = False) -> bool:
        """Prepare the backend.  Returns ``True`` only when work was done."""
        if self._initialized and not force:
            return False
        await self._initialize(platform_context)
        self._initialized = True
        logger.debug("%s initialized", self.name)
        return True

    async def _initialize(self, platform_context: Any) -> None:
        """Backend-specific setup; the default has nothing to prepare."""

    @abc.abstractmethod
    async def _get_property(self, key: str) -> Any:
        """Return the raw value for *key*, or ``None`` when it is not set."""

    async def get_property(self, key: str, default: Any = None) -> Any:
        value = await self._get_property(key)
        return default if value is None else value

    async def _get_converted(
        self, key: str, default: Any, convert: Callable[[Any], Any]
    ) -> Any:
        value = await self.get_property(key, None)
        if value is None:
            return default
        try:
            return convert(value)
        except ConfigurationError as exc:
            raise ConfigurationError(
                f"Invalid value for property '{key}': {exc.message}", cause=exc
            ) from exc

    async def get_boolean(self, key: str, default: bool | None = False) -> bool | None:
        return await self._get_converted(key, default, to_boolean)

    async def get_number(
        self, key: str, default: int | float | None = None
    ) -> int | float | None:
        return await self._get_converted(key, default, to_number)

    async def get_object(
        self,
        key: str,
        default: Any = None,
        factory: Callable[[Any], Any] | None = None,
    ) -> Any:
        value = await self._get_converted(key, default, to_json)
        if value is not None and factory is not None:
            value = factory(value)
        return value

    async def get_typed_property(
        self,
        key: str,
        kind: PropertyKind | str = PropertyKind.STRING,
        default: Any = None,
        factory: Callable[[Any], Any] | None = None,
    ) -> Any:
        try:
            kind = PropertyKind(kind)
        except ValueError as exc:
            raise ValidationError(f"Property type '{kind}' is invalid.", tag=key, cause=exc) from exc

        if kind is PropertyKind.BOOLEAN:
            return await self.get_boolean(key, default)
        if kind is PropertyKind.NUMBER:
            return await self.get_number(key, default)
        if kind is PropertyKind.JSON:
            return await self.get_object(key, default, factory)
        return await self.get_property(key, default)

    def __str__(self) -> str:
        return self.name


class EnvironmentHandler(PropertyHandler):
    """Reads settings straight from the process environment."""

    async def _get_property(self, key: str) -> str | None:
        value = os.environ.get(key)
        if value is None or not value.strip():
            return None
        return value


class ManagedResourceHandler(PropertyHandler):
    """A remote store reached with a managed identity bearer credential.

    The credential for ``resource`` is cached until its declared expiry.
    ``refresh`` fetches a new one only when it is missing or expired and then
    calls ``_refresh_source`` so the subclass can rebind its client.
    """

    def __init__(
        self,
        resource: str,
        identity: ManagedIdentityClient | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self._resource = resource
        self._identity = identity
        self._http_client = http_client
        self._credential: AccessToken | None = None
        self._tokens: dict[str, AccessToken] = {}
        self._environment = EnvironmentHandler()

    @property
    def resource(self) -> str:
        return self._resource

    @property
    def credential(self) -> AccessToken | None:
        return self._credential

    async def _initialize(self, platform_context: Any) -> None:
        if self._identity is None:
            self._identity = ManagedIdentityClient.from_environment(self._http_client)
        await self._environment.initialize(platform_context)

    async def refresh(self) -> AccessToken:
        """Return a valid credential, refreshing it and the source if needed."""
        if self._identity is None:
            raise ConfigurationError(f"{self.name} used before initialize().")
        if self._credential is None or self._credential.is_expired:
            logger.info("%s refreshing credential for resource=%s", self.name, self._resource)
            self._credential = await self._identity.get_token(self._resource)
            await self._refresh_source(self._credential)
        return self._credential

    async def _token_for(self, resource: str) -> AccessToken:
        """Cached credential for a secondary audience."""
        if resource == self._resource:
            return await self.refresh()
        if self._identity is None:
            raise ConfigurationError(f"{self.name} used before initialize().")
        token = self._tokens.get(resource)
        if token is None or token.is_expired:
            token = await self._identity.get_token(resource)
            self._tokens[resource] = token
        return token

    @abc.abstractmethod
    async def _refresh_source(self, token: AccessToken) -> None:
        """Rebuild or rebind the downstream client with *token*."""


def parse_vault_reference(raw: Any) -> str | None:
    """Return the reference id when *raw* is a vault reference document."""
    if not isinstance(raw, str) or not raw.lstrip().startswith("{"):
        return None
    try:
        document = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(document, dict) or document.get("_type") != VAULT_REFERENCE_TYPE:
        return None
    reference = document.get("_id")
    if not isinstance(reference, str) or not reference.strip():
        raise ConfigurationError("Invalid vault reference, _id required.")
    return reference


class VaultResourceHandler(ManagedResourceHandler):
    """Environment settings that may point at a vault secret.

    A setting whose value is ``{"_type": "vault.reference", "_id": "<ref>"}``
    is replaced by the secret ``<ref>`` from the vault; any other value is
    returned unchanged.
    """

    def __init__(
        self,
        store: SecretStore | None = None,
        identity: ManagedIdentityClient | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._store: SecretStore = store if store is not None else KeyVault(http_client)
        super().__init__(self._store.resource, identity=identity, http_client=http_client)

    async def _refresh_source(self, token: AccessToken) -> None:
        await self._store.bind(token)

    async def _get_property(self, key: str) -> Any:
        raw = await self._environment.get_property(key, None)
        reference = parse_vault_reference(raw)
        if reference is None:
            return raw
        await self.refresh()
        logger.debug("Resolving property key=%s from vault", key)
        return await self._store.get_secret(reference)


class AppConfigResourceHandler(ManagedResourceHandler):
    """Settings stored in a remote App Configuration store.

    Keys the store does not hold fall back to the process environment.  When
    ``use_vault`` is set, Key Vault references stored in App Configuration are
    resolved with a vault-audience credential.
    """

    def __init__(
        self,
        client: AppConfigClient,
        use_vault: bool = False,
        vault: KeyVault | None = None,
        identity: ManagedIdentityClient | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            "https://management.azure.com/", identity=identity, http_client=http_client
        )
        self._client = client
        self._use_vault = use_vault
        self._vault = vault if vault is not None else KeyVault(http_client)

    async def _refresh_source(self, token: AccessToken) -> None:
        await self._client.bind(token)

    async def _get_property(self, key: str) -> Any:
        await self.refresh()
        record = await self._client.get_key_value(key)
        if record is None:
            return await self._environment.get_property(key, None)
        if self._use_vault and record.get("contentType") == VAULT_REFERENCE_CONTENT_TYPE:
            return await self._resolve_vault_reference(key, record.get("value"))
        return record.get("value")

    async def _resolve_vault_reference(self, key: str, value: Any) -> str:
        try:
            uri = json.loads(value)["uri"]
        except (TypeError, ValueError, KeyError) as exc:
            raise ConfigurationError(
                f"Invalid Key Vault reference for App Configuration '{key}'.", cause=exc
            ) from exc
        await self._vault.bind(await self._token_for(VAULT_RESOURCE))
        return await self._vault.get_secret(uri)

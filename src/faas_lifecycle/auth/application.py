"""OAuth token cache per (application, resource).

Pattern: Eager Warm, Lazy Refresh
----------------------------------
``initialize`` fetches a token for every declared resource concurrently and
commits them only when every fetch succeeded, so a failed start never leaves
half an authorization behind.  After that, ``get_token`` serves the cached
token until it expires and refreshes transparently when it has.

Two refresh strategies exist:

  - managed:            the platform managed identity endpoint.  ``tenant``
                        and ``secret`` override ``IDENTITY_ENDPOINT`` and
                        ``IDENTITY_HEADER`` when given.
  - client credentials: ``azure.identity`` ``ClientSecretCredential`` against
                        ``authority``/``tenant`` with ``id``/``secret``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

import httpx
from azure.core.exceptions import ClientAuthenticationError
from azure.identity.aio import ClientSecretCredential

from faas_lifecycle.auth.identity import IDENTITY_ENDPOINT_ENV, IDENTITY_HEADER_ENV, ManagedIdentityClient
from faas_lifecycle.auth.token import AccessToken, parse_expiry
from faas_lifecycle.config.property import JsonProperty, require_fields
from faas_lifecycle.errors import AuthorizationError, ConfigurationError

logger = logging.getLogger(__name__)


def _scope(resource: str) -> str:
    return resource.rstrip("/") + "/.default"


class ApplicationAuthorization:
    """Tokens for one application id across a set of resources."""

    def __init__(
        self,
        id: str,
        resources: list[str] | None = None,
        authority: str | None = None,
        tenant: str | None = None,
        secret: str | None = None,
        managed: bool = False,
        skew: float = 0,
        identity: ManagedIdentityClient | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._id = id
        self._resources: list[str] = list(resources or [])
        self._authority = authority
        self._tenant = tenant
        self._secret = secret
        self._managed = managed
        self._skew = skew
        self._identity = identity
        self._http_client = http_client
        self._tokens: dict[str, AccessToken] = {}

    @property
    def id(self) -> str:
        return self._id

    @property
    def authority(self) -> str | None:
        return self._authority

    @property
    def tenant(self) -> str | None:
        return self._tenant

    @property
    def managed(self) -> bool:
        return self._managed

    @property
    def skew(self) -> float:
        return self._skew

    @property
    def resources(self) -> list[str]:
        return list(self._resources)

    def add_resource(self, resource: str) -> ApplicationAuthorization:
        if resource not in self._resources:
            self._resources.append(resource)
        return self

    def cached_token(self, resource: str) -> AccessToken | None:
        return self._tokens.get(resource)

    async def get_token(self, resource: str) -> str:
        """Return a valid bearer token for *resource*.

        Raises ``AuthorizationError`` when *resource* was never fetched for
        this application.
        """
        token = self._tokens.get(resource)
        if token is None:
            raise AuthorizationError(
                f"Resource '{resource}' not authorized for application '{self._id}'."
            )
        if token.is_expired:
            token = await self.refresh_token(resource)
        return token.token

    async def refresh_token(self, resource: str) -> AccessToken:
        """Fetch a new token for *resource* and cache it."""
        token = await self._fetch(resource)
        self._tokens[resource] = token
        return token

    async def initialize(self) -> ApplicationAuthorization:
        if not self._resources:
            raise ConfigurationError(
                f"Application authorization '{self._id}' requires at least one resource."
            )
        tokens = await asyncio.gather(*(self._fetch(resource) for resource in self._resources))
        self._tokens.update({token.resource: token for token in tokens})
        logger.info(
            "Application %s authorized for %d resource(s), managed=%s",
            self._id, len(tokens), self._managed,
        )
        return self

    async def _fetch(self, resource: str) -> AccessToken:
        if self._managed:
            token = await self._fetch_managed(resource)
        else:
            token = await self._fetch_application(resource)
        return token.with_skew(self._skew)

    async def _fetch_managed(self, resource: str) -> AccessToken:
        if self._identity is None:
            endpoint = self._tenant or os.environ.get(IDENTITY_ENDPOINT_ENV, "").strip()
            secret = self._secret or os.environ.get(IDENTITY_HEADER_ENV, "").strip()
            if not endpoint or not secret:
                raise ConfigurationError("Function not configured for Managed Identity.")
            self._identity = ManagedIdentityClient(endpoint, secret, http_client=self._http_client)
        return await self._identity.get_token(resource)

    async def _fetch_application(self, resource: str) -> AccessToken:
        if not (self._tenant and self._secret):
            raise ConfigurationError(
                f"Application authorization '{self._id}' requires a tenant and secret."
            )
        kwargs: dict[str, Any] = {}
        if self._authority:
            kwargs["authority"] = self._authority
        credential = ClientSecretCredential(self._tenant, self._id, self._secret, **kwargs)
        try:
            async with credential:
                result = await credential.get_token(_scope(resource))
        except ClientAuthenticationError as exc:
            raise AuthorizationError("Not authorized.", cause=exc) from exc
        logger.debug("Client credential token issued for application=%s resource=%s", self._id, resource)
        return AccessToken(token=result.token, resource=resource, expires_at=parse_expiry(result.expires_on))


class ApplicationAuthorizationProperty(JsonProperty):
    """JSON descriptor resolved into an ``ApplicationAuthorization``.

    ``{"authority": ..., "tenant": ..., "id": ..., "secret": ...,
    "resources": [...], "managed": false, "skew": 0}``
    """

    def convert(self, raw: Any) -> ApplicationAuthorization:
        source = require_fields(
            super().convert(raw), "ApplicationAuthorization",
            ("authority", "tenant", "id", "secret", "resources"),
        )
        if not isinstance(source["resources"], list):
            raise ConfigurationError("Invalid ApplicationAuthorization, resources must be an array.")
        return ApplicationAuthorization(
            id=source["id"],
            resources=source["resources"],
            authority=source["authority"],
            tenant=source["tenant"],
            secret=source["secret"],
            managed=bool(source.get("managed", False)),
            skew=source.get("skew", 0),
        )

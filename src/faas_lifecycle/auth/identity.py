"""Managed identity token acquisition.

The hosting platform exposes a local token endpoint and a shared secret
through two environment variables.  Any component that needs a bearer token
without an embedded credential (vault handlers, app-config handlers, the local
application authorization) goes through ``ManagedIdentityClient``.
"""

from __future__ import annotations

import logging
import os

import httpx

from faas_lifecycle.auth.token import AccessToken, parse_expiry
from faas_lifecycle.errors import AuthorizationError, ConfigurationError
from faas_lifecycle.transport import http_session

logger = logging.getLogger(__name__)

IDENTITY_ENDPOINT_ENV = "IDENTITY_ENDPOINT"
IDENTITY_HEADER_ENV = "IDENTITY_HEADER"

DEFAULT_API_VERSION = "2019-08-01"
DEFAULT_SECRET_HEADER = "X-IDENTITY-HEADER"


class ManagedIdentityClient:
    """Requests resource tokens from the platform managed identity endpoint."""

    def __init__(
        self,
        endpoint: str,
        secret: str,
        api_version: str = DEFAULT_API_VERSION,
        secret_header: str = DEFAULT_SECRET_HEADER,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._secret = secret
        self._api_version = api_version
        self._secret_header = secret_header
        self._http_client = http_client

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @classmethod
    def from_environment(
        cls, http_client: httpx.AsyncClient | None = None
    ) -> ManagedIdentityClient:
        """Build a client from ``IDENTITY_ENDPOINT``/``IDENTITY_HEADER``.

        Raises ``ConfigurationError`` when either variable is missing, which
        means the function is not running under a managed identity.
        """
        endpoint = os.environ.get(IDENTITY_ENDPOINT_ENV, "").strip()
        secret = os.environ.get(IDENTITY_HEADER_ENV, "").strip()
        if not endpoint or not secret:
            logger.error(
                "%s and/or %s missing; is this function using a managed identity?",
                IDENTITY_ENDPOINT_ENV,
                IDENTITY_HEADER_ENV,
            )
            raise ConfigurationError("Function not configured for Managed Identity.")
        return cls(endpoint=endpoint, secret=secret, http_client=http_client)

    async def get_token(self, resource: str) -> AccessToken:
        """Fetch a fresh token for *resource*.  No caching happens here."""
        params = {"resource": resource, "api-version": self._api_version}
        headers = {self._secret_header: self._secret}
        try:
            async with http_session(self._http_client) as client:
                response = await client.get(self._endpoint, params=params, headers=headers)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404:
                raise AuthorizationError(f"Resource '{resource}' not found.", 404, cause=exc) from exc
            raise AuthorizationError(
                f"Exception getting resource '{resource}': {exc.response.reason_phrase}",
                status,
                cause=exc,
            ) from exc
        except httpx.HTTPError as exc:
            raise AuthorizationError(f"Exception getting resource '{resource}'.", cause=exc) from exc

        try:
            token = AccessToken(
                token=payload["access_token"],
                resource=resource,
                expires_at=parse_expiry(payload["expires_on"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise AuthorizationError(
                f"Invalid managed identity response for resource '{resource}'.", cause=exc
            ) from exc

        logger.info("Managed identity token issued for resource=%s, expires_at=%s",
                    resource, token.expires_at.isoformat())
        return token

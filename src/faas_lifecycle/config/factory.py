"""Build a ``PropertyHandler`` from a JSON descriptor held in the environment.

The descriptor lives in ``core.property.handler`` by default::

    {"type": "appconfig",
     "subscriptionId": "...", "resourceGroupName": "...", "configStoreName": "...",
     "label": "production", "useVault": true,
     "cache": {"ttl": 5, "unit": "minutes"}}

``type`` is one of ``environment``, ``vault`` or ``appconfig``.  A ``cache``
block wraps the result in a ``CachingHandler``.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from typing import Any

import httpx

from faas_lifecycle.config.cache import CachingHandler
from faas_lifecycle.config.handlers import (
    AppConfigResourceHandler,
    EnvironmentHandler,
    PropertyHandler,
    VaultResourceHandler,
)
from faas_lifecycle.errors import ConfigurationError, ValidationError
from faas_lifecycle.vault.appconfig import AppConfigClient
from faas_lifecycle.vault.hashicorp import HashiCorpVault
from faas_lifecycle.vault.keyvault import KeyVault

logger = logging.getLogger(__name__)

PROPERTY_HANDLER = "core.property.handler"


def _required_string(source: dict[str, Any], field: str, kind: str) -> str:
    value = source.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Invalid {kind}, missing '{field}'.", tag=field)
    return value


class HandlerFactory:
    """Creates handlers from descriptors through an explicit type table."""

    def __init__(self, key: str = PROPERTY_HANDLER, http_client: httpx.AsyncClient | None = None) -> None:
        self._key = key
        self._http_client = http_client
        self._builders: dict[str, Callable[[dict[str, Any]], PropertyHandler]] = {
            "environment": self._build_environment,
            "vault": self._build_vault,
            "appconfig": self._build_appconfig,
        }

    @property
    def key(self) -> str:
        return self._key

    def has_descriptor(self) -> bool:
        return bool(os.environ.get(self._key, "").strip())

    def create(self) -> PropertyHandler:
        """Read the descriptor from the environment and build the handler."""
        raw = os.environ.get(self._key, "")
        if not raw.strip():
            raise ConfigurationError(f"Invalid Configuration for property '{self._key}'.")
        try:
            source = json.loads(raw)
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid Configuration for property '{self._key}', not JSON.", cause=exc
            ) from exc
        return self.create_from(source)

    def create_from(self, source: Any) -> PropertyHandler:
        if not isinstance(source, dict):
            raise ValidationError("Property handler descriptor must be an object.", tag=self._key)
        kind = source.get("type", "environment")
        builder = self._builders.get(kind)
        if builder is None:
            raise ValidationError(f"Unknown property handler type '{kind}'.", tag="type")
        handler = self._wrap_cache(builder(source), source)
        logger.info("Property handler %s created from %s", handler.name, self._key)
        return handler

    # -- builders ------------------------------------------------------------

    def _build_environment(self, source: dict[str, Any]) -> PropertyHandler:
        return EnvironmentHandler()

    def _build_vault(self, source: dict[str, Any]) -> PropertyHandler:
        backend = source.get("backend", "keyvault")
        if backend == "keyvault":
            store = KeyVault(self._http_client)
        elif backend == "hashicorp":
            store = HashiCorpVault(
                vault_addr=_required_string(source, "address", "vault handler"),
                role=_required_string(source, "role", "vault handler"),
                kv_mount=source.get("mount", "secret"),
                auth_mount=source.get("authMount", "azure"),
            )
        else:
            raise ValidationError(f"Unknown vault backend '{backend}'.", tag="backend")
        return VaultResourceHandler(store=store, http_client=self._http_client)

    def _build_appconfig(self, source: dict[str, Any]) -> PropertyHandler:
        kind = "app configuration handler"
        label = source.get("label")
        use_vault = source.get("useVault", False)
        client = AppConfigClient(
            subscription_id=_required_string(source, "subscriptionId", kind),
            resource_group=_required_string(source, "resourceGroupName", kind),
            store_name=_required_string(source, "configStoreName", kind),
            label=label if isinstance(label, str) and label.strip() else "development",
            http_client=self._http_client,
        )
        return AppConfigResourceHandler(
            client,
            use_vault=use_vault if isinstance(use_vault, bool) else False,
            http_client=self._http_client,
        )

    @staticmethod
    def _wrap_cache(handler: PropertyHandler, source: dict[str, Any]) -> PropertyHandler:
        cache = source.get("cache")
        if cache is None:
            return handler
        if not isinstance(cache, dict):
            raise ValidationError("Invalid Cache Configuration.", tag="cache")
        ttl = cache.get("ttl")
        unit = cache.get("unit")
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
            raise ValidationError("Invalid Cache Configuration.", tag="cache.ttl")
        if not isinstance(unit, str) or not unit.strip():
            raise ValidationError("Invalid Cache Configuration.", tag="cache.unit")
        return CachingHandler(handler, ttl=ttl, unit=unit)

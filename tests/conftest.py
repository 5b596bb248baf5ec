"""Shared fixtures for tests."""

from __future__ import annotations

import datetime
import json
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from faas_lifecycle.config.handlers import PropertyHandler

ENVIRONMENT_KEYS = (
    "IDENTITY_ENDPOINT",
    "IDENTITY_HEADER",
    "core.property.handler",
    "core.property.deployment.local.development",
    "core.property.cache.ttl",
    "core.property.cache.unit",
    "core.property.cache.overrides",
    "core.authorization.application",
    "core.authorization.resource",
    "core.function.roles",
    "core.managed.identity.object.id",
)

IDENTITY_ENDPOINT = "http://localhost:8081/msi/token"


class FakePlatformContext:
    """Stand-in for the host's invocation context."""

    def __init__(self, invocation_id: str = "invocation-1", traceparent: str | None = None) -> None:
        self.bindings: dict[str, Any] = {}
        self.invocation_id = invocation_id
        self.trace_context = {"traceparent": traceparent} if traceparent else None
        self.log = MagicMock()
        self.done_calls: list[Any] = []

    def done(self, value: Any = None) -> None:
        self.done_calls.append(value)


class DictHandler(PropertyHandler):
    """In-memory handler that counts lookups."""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        super().__init__()
        self.values = dict(values or {})
        self.lookups: list[str] = []
        self.initialize_calls = 0

    async def _initialize(self, platform_context: Any) -> None:
        self.initialize_calls += 1

    async def _get_property(self, key: str) -> Any:
        self.lookups.append(key)
        return self.values.get(key)


def epoch_in(seconds: float) -> int:
    return int((datetime.datetime.now(datetime.UTC) + datetime.timedelta(seconds=seconds)).timestamp())


def identity_transport(
    tokens: dict[str, str] | None = None,
    expires_in: float = 3600,
    calls: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """Managed identity endpoint issuing ``tokens[resource]`` (or ``T-<resource>``)."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        resource = request.url.params["resource"]
        token = (tokens or {}).get(resource, f"T-{resource}")
        return httpx.Response(200, json={"access_token": token, "expires_on": epoch_in(expires_in)})

    return httpx.MockTransport(handler)


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_env(value: Any) -> str:
    return json.dumps(value)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Every test starts without identity or core.* settings."""
    for key in ENVIRONMENT_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def managed_identity_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IDENTITY_ENDPOINT", IDENTITY_ENDPOINT)
    monkeypatch.setenv("IDENTITY_HEADER", "identity-secret")


@pytest.fixture
def platform_context() -> FakePlatformContext:
    return FakePlatformContext()

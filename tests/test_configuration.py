"""Tests for loading and warm reuse of the Configuration."""

from __future__ import annotations

import json
import pathlib

import pytest
from conftest import DictHandler, FakePlatformContext

from faas_lifecycle.auth.application import ApplicationAuthorization, ApplicationAuthorizationProperty
from faas_lifecycle.config.cache import CachingHandler
from faas_lifecycle.config.handlers import EnvironmentHandler
from faas_lifecycle.config.property import BooleanProperty, NumericProperty, StringProperty
from faas_lifecycle.configuration import (
    APPLICATION_AUTHORIZATION,
    FUNCTION_ROLES,
    LOCAL_DEVELOPMENT,
    RESOURCE_AUTHORIZATION,
    Configuration,
)
from faas_lifecycle.errors import ConfigurationError
from faas_lifecycle.policy.match import MatchAll
from faas_lifecycle.policy.permission import FunctionRole, FunctionRoleProperty


class TestConstruction:
    def test_empty_name(self) -> None:
        with pytest.raises(ConfigurationError):
            Configuration("   ")

    def test_name_must_be_string_or_property(self) -> None:
        with pytest.raises(ConfigurationError):
            Configuration(42)  # type: ignore[arg-type]

    def test_values(self) -> None:
        configuration = Configuration("svc").set_value("limit", 3)
        assert configuration.get_value("limit") == 3
        assert configuration.get_value("absent", "d") == "d"
        with pytest.raises(ConfigurationError):
            configuration.set_value("", 1)


class TestLoad:
    @pytest.mark.asyncio
    async def test_second_load_touches_nothing(self) -> None:
        handler = DictHandler()
        configuration = Configuration("svc", property_handler=handler)

        await configuration.load(FakePlatformContext())
        assert configuration.name == "svc"
        assert configuration.loaded
        lookups = list(handler.lookups)

        await configuration.load(FakePlatformContext("invocation-2"))
        assert configuration.name == "svc"
        assert handler.lookups == lookups
        assert handler.initialize_calls == 1
        assert configuration.invocation_id == "invocation-2"

    @pytest.mark.asyncio
    async def test_name_from_property(self) -> None:
        handler = DictHandler({"function.name": "orders"})
        configuration = Configuration(StringProperty("function.name"), property_handler=handler)
        await configuration.load()
        assert configuration.name == "orders"

    @pytest.mark.asyncio
    async def test_unresolved_name_fails(self) -> None:
        configuration = Configuration(StringProperty("function.name"), property_handler=DictHandler())
        with pytest.raises(ConfigurationError, match="Invalid Configuration"):
            await configuration.load()
        assert not configuration.loaded

    @pytest.mark.asyncio
    async def test_properties_resolved_across_the_graph(self) -> None:
        handler = DictHandler({"feature.on": "true", "app.tenant": "tenant-id", "limit": "5"})
        authorization = ApplicationAuthorization("app", resources=["r1"], tenant=StringProperty("app.tenant"))
        configuration = (
            Configuration("svc", property_handler=handler)
            .add_application_authorization(authorization)
            .set_value("feature", BooleanProperty("feature.on"))
            .set_value("nested", {"limits": [NumericProperty("limit"), "literal"]})
        )

        await configuration.load()

        assert configuration.get_value("feature") is True
        assert configuration.get_value("nested") == {"limits": [5, "literal"]}
        assert configuration.authorizations[0].tenant == "tenant-id"

    @pytest.mark.asyncio
    async def test_one_bad_property_fails_the_load(self) -> None:
        handler = DictHandler({"limit": "lots", "ok": "true"})
        configuration = (
            Configuration("svc", property_handler=handler)
            .set_value("limit", NumericProperty("limit"))
            .set_value("ok", BooleanProperty("ok"))
        )
        with pytest.raises(ConfigurationError, match="'limit'"):
            await configuration.load()
        assert not configuration.loaded

    @pytest.mark.asyncio
    async def test_namespaced_settings(self) -> None:
        handler = DictHandler(
            {
                APPLICATION_AUTHORIZATION: json.dumps(
                    [{"authority": "a", "tenant": "t", "id": "app", "secret": "s", "resources": ["r1"]}]
                ),
                RESOURCE_AUTHORIZATION: json.dumps(["https://vault.azure.net"]),
                FUNCTION_ROLES: json.dumps(
                    [{"action": "process", "roles": ["admin"], "match": {"type": "MatchAll"}}]
                ),
            }
        )
        configuration = Configuration("svc", property_handler=handler)
        await configuration.load()

        assert [a.id for a in configuration.authorizations] == ["app"]
        assert configuration.resource_authorizations == ["https://vault.azure.net"]
        assert isinstance(configuration.roles[0].match, MatchAll)

    @pytest.mark.asyncio
    async def test_namespaced_setting_must_be_array(self) -> None:
        handler = DictHandler({FUNCTION_ROLES: '{"action": "process"}'})
        with pytest.raises(ConfigurationError, match="expected a JSON array"):
            await Configuration("svc", property_handler=handler).load()

    @pytest.mark.asyncio
    async def test_permission_file(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "permissions.yaml"
        path.write_text("permissions:\n  process:\n    roles: [reader]\n")
        configuration = Configuration("svc", property_handler=DictHandler(), permissions_file=str(path))
        configuration.add_function_role(FunctionRole("save", ["writer"]))
        await configuration.load()
        assert sorted(role.action for role in configuration.roles) == ["process", "save"]

    @pytest.mark.asyncio
    async def test_unset_optional_declarations_are_skipped(self) -> None:
        configuration = (
            Configuration("svc", property_handler=DictHandler())
            .add_application_authorization(ApplicationAuthorizationProperty("my.optional.app"))
            .add_resource_authorization(StringProperty("my.optional.resource"))
            .add_function_role(FunctionRoleProperty("my.optional.role"))
            .add_function_role(FunctionRole("save", ["writer"]))
        )
        await configuration.load()

        assert configuration.authorizations == []
        assert configuration.resource_authorizations == []
        assert [role.action for role in configuration.roles] == ["save"]

    @pytest.mark.asyncio
    async def test_set_optional_role_is_resolved(self) -> None:
        handler = DictHandler(
            {"my.optional.role": json.dumps({"action": "process", "roles": ["admin"], "match": {"type": "MatchAll"}})}
        )
        configuration = Configuration("svc", property_handler=handler)
        configuration.add_function_role(FunctionRoleProperty("my.optional.role"))
        await configuration.load()
        assert configuration.roles[0].roles == {"admin"}


class TestHandlerSelection:
    @pytest.mark.asyncio
    async def test_default_is_environment(self) -> None:
        configuration = Configuration("svc")
        await configuration.load()
        assert isinstance(configuration.property_handler, EnvironmentHandler)

    @pytest.mark.asyncio
    async def test_descriptor_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(
            "core.property.handler", json.dumps({"type": "environment", "cache": {"ttl": 1, "unit": "minutes"}})
        )
        configuration = Configuration("svc")
        await configuration.load()
        assert isinstance(configuration.property_handler, CachingHandler)

    @pytest.mark.asyncio
    async def test_local_development_forces_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(LOCAL_DEVELOPMENT, "TRUE")
        handler = DictHandler()
        configuration = Configuration("svc", property_handler=handler)
        await configuration.load()
        assert isinstance(configuration.property_handler, EnvironmentHandler)
        assert handler.initialize_calls == 0


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_makes_next_load_cold(self) -> None:
        handler = DictHandler({"limit": "1"})
        configuration = Configuration("svc", property_handler=handler).set_value("limit", NumericProperty("limit"))
        await configuration.load()
        configuration.base_loaded = True
        handler.values["limit"] = "2"

        configuration.reset()
        assert not configuration.loaded
        assert not configuration.base_loaded
        await configuration.load()

        assert configuration.get_value("limit") == 2

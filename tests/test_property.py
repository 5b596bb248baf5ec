"""Tests for typed properties and handler typed getters."""

from __future__ import annotations

import pytest
from conftest import DictHandler

from faas_lifecycle.config.property import (
    BooleanProperty,
    JsonProperty,
    NumericProperty,
    PropertyKind,
    StringProperty,
    require_fields,
)
from faas_lifecycle.errors import ConfigurationError, ValidationError


class TestPropertyResolve:
    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            StringProperty("  ")

    @pytest.mark.asyncio
    async def test_default_is_returned_unconverted(self) -> None:
        handler = DictHandler()
        assert await BooleanProperty("flag", "yes").resolve(handler) == "yes"

    @pytest.mark.asyncio
    async def test_boolean_is_case_insensitive(self) -> None:
        handler = DictHandler({"flag": "TRUE", "other": "no"})
        assert await BooleanProperty("flag").resolve(handler) is True
        assert await BooleanProperty("other").resolve(handler) is False

    @pytest.mark.asyncio
    async def test_numeric_int_and_float(self) -> None:
        handler = DictHandler({"count": "42", "ratio": "0.5"})
        assert await NumericProperty("count").resolve(handler) == 42
        assert isinstance(await NumericProperty("count").resolve(handler), int)
        assert await NumericProperty("ratio").resolve(handler) == 0.5

    @pytest.mark.asyncio
    async def test_numeric_garbage_names_property(self) -> None:
        handler = DictHandler({"count": "many"})
        with pytest.raises(ConfigurationError, match="'count'"):
            await NumericProperty("count").resolve(handler)

    @pytest.mark.asyncio
    async def test_json(self) -> None:
        handler = DictHandler({"doc": '{"a": [1, 2]}'})
        assert await JsonProperty("doc").resolve(handler) == {"a": [1, 2]}

    @pytest.mark.asyncio
    async def test_properties_do_not_cache(self) -> None:
        handler = DictHandler({"name": "svc"})
        prop = StringProperty("name")
        await prop.resolve(handler)
        await prop.resolve(handler)
        assert handler.lookups == ["name", "name"]


class TestTypedGetters:
    @pytest.mark.asyncio
    async def test_typed_property_by_kind(self) -> None:
        handler = DictHandler({"n": "7", "b": "true", "j": "[1]"})
        assert await handler.get_typed_property("n", PropertyKind.NUMBER) == 7
        assert await handler.get_typed_property("b", "boolean") is True
        assert await handler.get_typed_property("j", "json") == [1]
        assert await handler.get_typed_property("missing", "string", "dflt") == "dflt"

    @pytest.mark.asyncio
    async def test_invalid_kind(self) -> None:
        with pytest.raises(ValidationError):
            await DictHandler().get_typed_property("x", "date")

    @pytest.mark.asyncio
    async def test_get_object_factory(self) -> None:
        handler = DictHandler({"j": '{"x": 1}'})
        assert await handler.get_object("j", None, lambda value: value["x"]) == 1


class TestRequireFields:
    def test_missing_field(self) -> None:
        with pytest.raises(ConfigurationError, match="id required"):
            require_fields({"a": 1}, "Thing", ("a", "id"))

    def test_not_an_object(self) -> None:
        with pytest.raises(ConfigurationError, match="expected a JSON object"):
            require_fields([1], "Thing", ("a",))

"""Typed, lazily resolved configuration values.

A ``Property`` is a declaration, not a value: it names a key, a default and a
kind.  ``Configuration.load`` finds every ``Property`` in its object graph,
resolves it through the active ``PropertyHandler`` and replaces the
declaration with the converted value.  Properties never cache; caching is the
handler's job (see ``CachingHandler``).

Defaults are returned as-is.  Only values actually found by the handler go
through the kind's conversion.
"""

from __future__ import annotations

import enum
import json
import re
from typing import TYPE_CHECKING, Any

from faas_lifecycle.errors import ConfigurationError

if TYPE_CHECKING:
    from faas_lifecycle.config.handlers import PropertyHandler

_INTEGER = re.compile(r"^[+-]?\d+$")


class PropertyKind(str, enum.Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"
    JSON = "json"


def to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def to_number(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    raw = str(value).strip()
    try:
        if _INTEGER.match(raw):
            return int(raw)
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Value '{raw}' is not a number.", cause=exc) from exc


def to_json(value: Any) -> Any:
    if not isinstance(value, (str, bytes, bytearray)):
        return value
    try:
        return json.loads(value)
    except ValueError as exc:
        raise ConfigurationError("Value is not valid JSON.", cause=exc) from exc


class Property:
    """A named value resolved on demand through a ``PropertyHandler``."""

    kind = PropertyKind.STRING

    def __init__(self, name: str, default: Any = None) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError("Property name cannot be empty.")
        self._name = name
        self._default = default

    @property
    def name(self) -> str:
        return self._name

    @property
    def default(self) -> Any:
        return self._default

    async def resolve(self, handler: PropertyHandler) -> Any:
        """Look the value up and convert it to this property's kind."""
        raw = await handler.get_property(self._name, None)
        if raw is None:
            return self._default
        try:
            return self.convert(raw)
        except ConfigurationError as exc:
            raise ConfigurationError(
                f"Invalid value for property '{self._name}': {exc.message}", cause=exc
            ) from exc

    def convert(self, raw: Any) -> Any:
        return raw

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"


class StringProperty(Property):
    kind = PropertyKind.STRING

    def convert(self, raw: Any) -> str:
        return str(raw)


class BooleanProperty(Property):
    kind = PropertyKind.BOOLEAN

    def convert(self, raw: Any) -> bool:
        return to_boolean(raw)


class NumericProperty(Property):
    kind = PropertyKind.NUMBER

    def convert(self, raw: Any) -> int | float:
        return to_number(raw)


class JsonProperty(Property):
    kind = PropertyKind.JSON

    def convert(self, raw: Any) -> Any:
        return to_json(raw)


def require_fields(source: Any, kind: str, fields: tuple[str, ...]) -> dict[str, Any]:
    """Validate a JSON descriptor and return it as a dict."""
    if not isinstance(source, dict):
        raise ConfigurationError(f"Invalid {kind}, expected a JSON object.")
    for field in fields:
        if field not in source:
            raise ConfigurationError(f"Invalid {kind}, {field} required.")
    return source

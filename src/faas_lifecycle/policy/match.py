"""Role-set comparison strategies.

``assertion`` is what the subject holds, ``values`` what the rule requires.
"""

from __future__ import annotations

import abc
from collections.abc import Collection

from faas_lifecycle.errors import ConfigurationError


class ValueMatch(abc.ABC):
    type = "ValueMatch"

    @abc.abstractmethod
    def is_match(self, assertion: Collection[str], values: Collection[str]) -> bool: ...

    def __repr__(self) -> str:
        return f"{self.type}()"


class MatchAny(ValueMatch):
    """The subject holds at least one of the required roles."""

    type = "MatchAny"

    def is_match(self, assertion: Collection[str], values: Collection[str]) -> bool:
        return any(value in assertion for value in values)


class MatchAll(ValueMatch):
    """The subject holds every required role; extra roles are allowed.

    A rule that requires nothing matches no one.
    """

    type = "MatchAll"

    def is_match(self, assertion: Collection[str], values: Collection[str]) -> bool:
        return bool(values) and all(value in assertion for value in values)


class MatchNone(ValueMatch):
    """The subject holds none of the listed roles."""

    type = "MatchNone"

    def is_match(self, assertion: Collection[str], values: Collection[str]) -> bool:
        return not any(value in assertion for value in values)


_MATCHES: dict[str, type[ValueMatch]] = {
    cls.type: cls for cls in (MatchAny, MatchAll, MatchNone)
}


def match_for(type_name: str) -> ValueMatch:
    """Return a new strategy for ``MatchAny``, ``MatchAll`` or ``MatchNone``."""
    try:
        return _MATCHES[type_name]()
    except (KeyError, TypeError) as exc:
        raise ConfigurationError(f"Invalid Match Type '{type_name}'.", cause=exc) from exc

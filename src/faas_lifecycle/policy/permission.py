"""Action-scoped authorization rules.

Pattern: Declarative Function Roles
------------------------------------
A ``FunctionRole`` binds one action (``process`` by default) to a set of
required roles and a ``ValueMatch`` strategy.  Rules come from three places:
code (``Configuration.add_function_role``), JSON properties
(``FunctionRoleProperty`` under ``core.function.roles``) and an optional YAML
file loaded by ``PermissionFile``::

    permissions:
      process:
        roles: [reader, writer]
        match: MatchAny
      delete:
        roles: [admin]
        match: MatchAll

Rules answer ``True``/``False``; turning ``False`` into a 403 is the sentry's
job.
"""

from __future__ import annotations

import pathlib
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import yaml

from faas_lifecycle.config.property import JsonProperty, require_fields
from faas_lifecycle.errors import ConfigurationError
from faas_lifecycle.policy.match import MatchAny, ValueMatch, match_for

if TYPE_CHECKING:
    from faas_lifecycle.function.context import BaseContext

DEFAULT_ACTION = "process"


class FunctionRole:
    """Required roles for one action, compared with a ``ValueMatch``."""

    def __init__(
        self,
        action: str = DEFAULT_ACTION,
        roles: Iterable[str] = (),
        match: ValueMatch | None = None,
    ) -> None:
        self._action = action.lower()
        self._roles: set[str] = set(roles)
        self._match = match if match is not None else MatchAny()

    @property
    def action(self) -> str:
        return self._action

    @property
    def roles(self) -> set[str]:
        return self._roles

    @property
    def match(self) -> ValueMatch:
        return self._match

    def add_role(self, role: str) -> FunctionRole:
        self._roles.add(role)
        return self

    def authorize(self, action: str, context: BaseContext) -> bool:
        """Return whether the context's subject may run *action*.

        A different action is simply not covered by this rule.
        """
        if action != self._action:
            return False
        subject = context.subject
        held = subject.roles if subject is not None else set()
        return self._match.is_match(held, self._roles)

    def __repr__(self) -> str:
        return f"FunctionRole(action={self._action!r}, roles={sorted(self._roles)!r}, match={self._match!r})"


Permission = FunctionRole


def _role_from(source: Any, kind: str) -> FunctionRole:
    source = require_fields(source, kind, ("action", "roles", "match"))
    if not isinstance(source["roles"], list):
        raise ConfigurationError(f"Invalid {kind}, roles must be an array.")
    match = source["match"]
    if isinstance(match, dict):
        if "type" not in match:
            raise ConfigurationError(f"Invalid {kind}.match, type required.")
        match = match["type"]
    return FunctionRole(str(source["action"]), source["roles"], match_for(match))


class FunctionRoleProperty(JsonProperty):
    """JSON ``{"action": ..., "roles": [...], "match": {"type": "MatchAny"}}``."""

    def convert(self, raw: Any) -> FunctionRole:
        return _role_from(super().convert(raw), "FunctionRole")


class PermissionFile:
    """Loads function roles from a YAML file with a top-level ``permissions`` key."""

    def __init__(self, path: str | pathlib.Path) -> None:
        self._path = pathlib.Path(path)
        self._data: dict[str, Any] = self._load()

    @property
    def path(self) -> pathlib.Path:
        return self._path

    def reload(self) -> None:
        """Re-read the permission file from disk."""
        self._data = self._load()

    def list_actions(self) -> list[str]:
        return list(self._data.keys())

    def permissions(self) -> list[FunctionRole]:
        roles = []
        for action, block in self._data.items():
            if not isinstance(block, dict):
                raise ConfigurationError(f"Permission '{action}' must be a mapping.")
            roles.append(
                _role_from(
                    {"action": action, "roles": block.get("roles", []), "match": block.get("match", "MatchAny")},
                    f"permission '{action}'",
                )
            )
        return roles

    # -- private helpers -----------------------------------------------------

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            raise ConfigurationError(f"Permission file not found: {self._path}")
        with open(self._path) as fh:
            try:
                data = yaml.safe_load(fh)
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Permission file is not valid YAML: {self._path}", cause=exc) from exc
        if not isinstance(data, dict) or not isinstance(data.get("permissions"), dict):
            raise ConfigurationError("Permission file must contain a top-level 'permissions' mapping")
        return data["permissions"]

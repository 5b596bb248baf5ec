"""The authenticated caller of one invocation."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class BaseSubject:
    """An identity and the roles it holds.

    Created by the authenticator once per invocation and discarded with the
    context; roles are filled in afterwards by the role resolver.
    """

    def __init__(self, id: str, roles: Iterable[str] = ()) -> None:
        self._id = id
        self._roles: set[str] = set(roles)

    @property
    def id(self) -> str:
        return self._id

    @property
    def roles(self) -> set[str]:
        return self._roles

    def add_role(self, role: str) -> BaseSubject:
        self._roles.add(role)
        return self

    def add_roles(self, roles: Iterable[str]) -> BaseSubject:
        self._roles.update(roles)
        return self

    def is_in_role(self, role: str) -> bool:
        return role in self._roles

    def to_dict(self) -> dict[str, Any]:
        return {"id": self._id, "roles": sorted(self._roles)}

    def __repr__(self) -> str:
        return f"BaseSubject(id={self._id!r}, roles={sorted(self._roles)!r})"

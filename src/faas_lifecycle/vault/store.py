"""Contract every secret backend satisfies for ``VaultResourceHandler``."""

from __future__ import annotations

from typing import Protocol

from faas_lifecycle.auth.token import AccessToken


class SecretStore(Protocol):
    """A vault that resolves secrets by reference id.

    ``bind`` is called with a fresh managed identity token whenever the
    owning handler refreshes its credential; ``get_secret`` is only called
    after at least one ``bind``.
    """

    @property
    def resource(self) -> str: ...

    async def bind(self, token: AccessToken) -> None: ...

    async def get_secret(self, reference: str) -> str: ...

"""Process-wide settings for a function.

Pattern: Load Once, Reuse Warm
-------------------------------
A ``Configuration`` is created once per process and handed to the function.
The first ``load`` picks the property handler, initializes it, reads the
namespaced JSON settings and then walks everything declared on the
configuration, resolving every ``Property`` it finds concurrently.  Any
failed resolution fails the whole load.  Later calls return immediately.

What is declared (``add_*``, constructor arguments) is kept apart from what
was resolved, so ``reset`` can drop every resolved value and the next
``load`` starts cold.

Sentry-level state (initialized application authorizations and the role
table) also lives here, behind ``base_loaded``, so that only the first
invocation of a warm process pays for building it.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from faas_lifecycle.auth.application import ApplicationAuthorization, ApplicationAuthorizationProperty
from faas_lifecycle.auth.crypto import Cryptography
from faas_lifecycle.config.factory import HandlerFactory
from faas_lifecycle.config.handlers import EnvironmentHandler, PropertyHandler
from faas_lifecycle.config.property import Property, StringProperty, to_boolean
from faas_lifecycle.errors import ConfigurationError
from faas_lifecycle.policy.permission import FunctionRole, FunctionRoleProperty, PermissionFile

if TYPE_CHECKING:
    from faas_lifecycle.auth.sentry import RoleResolver

logger = logging.getLogger(__name__)

APPLICATION_AUTHORIZATION = "core.authorization.application"
RESOURCE_AUTHORIZATION = "core.authorization.resource"
FUNCTION_ROLES = "core.function.roles"
LOCAL_DEVELOPMENT = "core.property.deployment.local.development"
MANAGED_IDENTITY_OBJECT_ID = "core.managed.identity.object.id"


def _walkable(value: Any) -> bool:
    if isinstance(value, (PropertyHandler, Property)):
        return False
    return hasattr(value, "__dict__") and type(value).__module__.startswith("faas_lifecycle.")


class Configuration:
    """Named, lazily loaded settings shared across invocations."""

    def __init__(
        self,
        name: str | StringProperty,
        property_handler: PropertyHandler | None = None,
        handler_factory: HandlerFactory | None = None,
        optimistic_authorization: bool = True,
        permissions_file: str | None = None,
        cryptography: Cryptography | None = None,
        role_resolver: RoleResolver | None = None,
    ) -> None:
        if isinstance(name, str):
            if not name.strip():
                raise ConfigurationError("Invalid configuration. Name cannot be empty.")
        elif not isinstance(name, StringProperty):
            raise ConfigurationError("Invalid configuration. Name must be a string or StringProperty.")

        self._explicit_handler = property_handler
        self._handler_factory = handler_factory
        self._handler: PropertyHandler | None = None
        self._platform_context: Any = None
        self.optimistic_authorization = optimistic_authorization
        self.permissions_file = permissions_file
        self.role_resolver = role_resolver

        self._declared: dict[str, Any] = {
            "name": name,
            "authorizations": [],
            "resources": [],
            "roles": [],
            "values": {},
            "cryptography": cryptography,
        }
        self._state: dict[str, Any] = self._fresh_state()
        self._loaded = False
        self._base_loaded = False
        self.local_application_id: str | None = None
        self.application_authorizations: dict[str, ApplicationAuthorization] = {}
        self.function_roles: dict[str, FunctionRole] = {}

    # -- declared and resolved values ----------------------------------------

    @property
    def name(self) -> Any:
        return self._state["name"]

    @property
    def property_handler(self) -> PropertyHandler | None:
        return self._handler

    @property
    def platform_context(self) -> Any:
        return self._platform_context

    @property
    def invocation_id(self) -> str | None:
        return getattr(self._platform_context, "invocation_id", None)

    @property
    def authorizations(self) -> list[Any]:
        return self._state["authorizations"]

    @property
    def resource_authorizations(self) -> list[Any]:
        return self._state["resources"]

    @property
    def roles(self) -> list[Any]:
        return self._state["roles"]

    @property
    def values(self) -> dict[str, Any]:
        return self._state["values"]

    @property
    def cryptography(self) -> Cryptography | None:
        return self._state["cryptography"]

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def base_loaded(self) -> bool:
        return self._base_loaded

    @base_loaded.setter
    def base_loaded(self, value: bool) -> None:
        self._base_loaded = value

    def _declare(self, key: str, item: Any) -> Configuration:
        self._declared[key].append(item)
        self._state[key].append(item)
        return self

    def add_application_authorization(
        self, authorization: ApplicationAuthorization | ApplicationAuthorizationProperty
    ) -> Configuration:
        return self._declare("authorizations", authorization)

    def add_resource_authorization(self, resource: str | StringProperty) -> Configuration:
        return self._declare("resources", resource)

    def add_function_role(self, role: FunctionRole | FunctionRoleProperty) -> Configuration:
        return self._declare("roles", role)

    def set_value(self, key: str, value: Any) -> Configuration:
        if not isinstance(key, str) or not key.strip():
            raise ConfigurationError("Invalid configuration. Key cannot be empty.")
        self._declared["values"][key] = value
        self._state["values"][key] = value
        return self

    def get_value(self, key: str, default: Any = None) -> Any:
        value = self._state["values"].get(key)
        return default if value is None else value

    # -- registries filled by the sentry --------------------------------------

    def register_authorization(self, authorization: ApplicationAuthorization) -> None:
        self.application_authorizations[authorization.id] = authorization

    def register_function_role(self, role: FunctionRole) -> None:
        self.function_roles[role.action] = role

    # -- lifecycle -----------------------------------------------------------

    def reset(self) -> None:
        """Discard resolved values and warm state; the next ``load`` is cold."""
        self._state = self._fresh_state()
        self._handler = None
        self._loaded = False
        self._base_loaded = False
        self.local_application_id = None
        self.application_authorizations.clear()
        self.function_roles.clear()
        logger.info("Configuration reset")

    async def load(self, platform_context: Any = None) -> Configuration:
        self._platform_context = platform_context
        if self._loaded and self._handler is not None:
            if not self._handler.initialized:
                await self._handler.initialize(platform_context)
            logger.debug("Configuration %s loaded from cache", self.name)
            return self

        self._state = self._fresh_state()
        self._handler = self._resolve_handler()
        await self._handler.initialize(platform_context)

        await self._load_declared()
        pending: list[Any] = []
        self._collect(self._state, pending, set())
        await asyncio.gather(*pending)
        self._drop_unset()
        self._load_permissions()
        if self.cryptography is not None:
            await self.cryptography.initialize()

        name = self._state["name"]
        if not isinstance(name, str) or not name.strip():
            logger.error("Invalid Configuration. Name cannot be empty after load.")
            raise ConfigurationError("Invalid Configuration.")

        self._loaded = True
        logger.info(
            "Configuration %s loaded from %s: %d authorization(s), %d resource(s), %d role(s)",
            name, self._handler.name, len(self.authorizations),
            len(self.resource_authorizations), len(self.roles),
        )
        return self

    # -- private helpers -----------------------------------------------------

    def _fresh_state(self) -> dict[str, Any]:
        return {
            key: (list(value) if isinstance(value, list) else dict(value) if isinstance(value, dict) else value)
            for key, value in self._declared.items()
        }

    def _resolve_handler(self) -> PropertyHandler:
        if to_boolean(os.environ.get(LOCAL_DEVELOPMENT, "false")):
            logger.warning("%s is set, using environment properties only", LOCAL_DEVELOPMENT)
            return EnvironmentHandler()
        if self._explicit_handler is not None:
            return self._explicit_handler
        if self._handler_factory is not None:
            return self._handler_factory.create()
        factory = HandlerFactory()
        if factory.has_descriptor():
            return factory.create()
        return EnvironmentHandler()

    async def _load_declared(self) -> None:
        applications, resources, roles = await asyncio.gather(
            self._get_list(APPLICATION_AUTHORIZATION),
            self._get_list(RESOURCE_AUTHORIZATION),
            self._get_list(FUNCTION_ROLES),
        )
        converter = ApplicationAuthorizationProperty(APPLICATION_AUTHORIZATION)
        self.authorizations.extend(converter.convert(item) for item in applications)
        self.resource_authorizations.extend(str(item) for item in resources)
        role_converter = FunctionRoleProperty(FUNCTION_ROLES)
        self.roles.extend(role_converter.convert(item) for item in roles)

    async def _get_list(self, key: str) -> list[Any]:
        value = await self._handler.get_object(key, [])
        if not isinstance(value, list):
            raise ConfigurationError(f"Invalid Configuration for property '{key}', expected a JSON array.")
        return value

    def _drop_unset(self) -> None:
        for key in ("authorizations", "resources", "roles"):
            items = self._state[key]
            kept = [item for item in items if item is not None]
            if len(kept) != len(items):
                logger.debug("Skipping %d unset %s entries", len(items) - len(kept), key)
            items[:] = kept

    def _load_permissions(self) -> None:
        if not self.permissions_file:
            return
        permissions = PermissionFile(self.permissions_file).permissions()
        self.roles.extend(permissions)
        logger.debug("Loaded %d permission(s) from %s", len(permissions), self.permissions_file)

    def _collect(self, node: Any, pending: list[Any], visited: set[int]) -> None:
        setter: Callable[[Any, Any], None]
        if isinstance(node, dict):
            items = list(node.items())
            setter = node.__setitem__
        elif isinstance(node, list):
            items = list(enumerate(node))
            setter = node.__setitem__
        elif _walkable(node):
            items = list(vars(node).items())
            setter = functools.partial(setattr, node)
        else:
            return
        if id(node) in visited:
            return
        visited.add(id(node))

        for key, value in items:
            if isinstance(value, Property):
                pending.append(self._resolve_into(setter, key, value))
            elif value is not None:
                self._collect(value, pending, visited)

    async def _resolve_into(self, setter: Callable[[Any, Any], None], key: Any, prop: Property) -> None:
        setter(key, await prop.resolve(self._handler))

"""Authentication and authorization facade for one invocation.

Pattern: Composed Sentry
-------------------------
``BaseSentry`` does not decide *how* a caller is identified or where roles
come from.  It is composed of:

  - an authenticator:  any object with ``async authenticate(context)``
                       returning a ``BaseSubject``.  The default binds the
                       subject to the local application identity.
  - a role resolver:   ``async resolve(context)`` adding roles to
                       ``context.subject``.  The default leaves it unchanged.

Application authorizations and function roles are built and registered on the
``Configuration`` the first time a sentry initializes against it; later
sentries in the same warm process reuse them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from faas_lifecycle.auth.application import ApplicationAuthorization
from faas_lifecycle.auth.subject import BaseSubject
from faas_lifecycle.configuration import MANAGED_IDENTITY_OBJECT_ID
from faas_lifecycle.errors import AuthorizationError, ConfigurationError, ForbiddenError

if TYPE_CHECKING:
    from faas_lifecycle.configuration import Configuration
    from faas_lifecycle.function.context import BaseContext

logger = logging.getLogger(__name__)


class Authenticator(Protocol):
    async def authenticate(self, context: BaseContext) -> BaseSubject: ...


class LocalIdentityAuthenticator:
    """Binds every invocation to the function's own application identity."""

    async def authenticate(self, context: BaseContext) -> BaseSubject:
        return BaseSubject(context.sentry.local_application_id)


class RoleResolver:
    """Leaves the subject's roles as the authenticator set them."""

    async def resolve(self, context: BaseContext) -> BaseSubject:
        return context.subject


class SessionRoleResolver(RoleResolver):
    """Adds the ``roles`` session property to the subject."""

    async def resolve(self, context: BaseContext) -> BaseSubject:
        roles = context.get_session_property("roles", [])
        if isinstance(roles, str):
            roles = [roles]
        context.subject.add_roles(roles)
        return context.subject


class BaseSentry:
    def __init__(
        self,
        authenticator: Authenticator | None = None,
        role_resolver: RoleResolver | None = None,
    ) -> None:
        self._authenticator: Authenticator = authenticator or LocalIdentityAuthenticator()
        self._role_resolver = role_resolver
        self._configuration: Configuration | None = None
        self._local_app_id: str | None = None

    @property
    def local_application_id(self) -> str | None:
        return self._local_app_id

    @property
    def role_resolver(self) -> RoleResolver | None:
        return self._role_resolver

    @property
    def configuration(self) -> Configuration | None:
        return self._configuration

    async def initialize(self, configuration: Configuration) -> BaseSentry:
        self._configuration = configuration
        if self._role_resolver is None:
            self._role_resolver = configuration.role_resolver or RoleResolver()

        if configuration.base_loaded:
            self._local_app_id = configuration.local_application_id
            logger.debug("Sentry reusing %d authorization(s)", len(configuration.application_authorizations))
            return self

        self._local_app_id = await self._resolve_local_id(configuration)
        authorizations: list[ApplicationAuthorization] = list(configuration.authorizations)
        if configuration.resource_authorizations:
            authorizations.append(
                ApplicationAuthorization(
                    self._local_app_id,
                    resources=list(configuration.resource_authorizations),
                    managed=True,
                )
            )
        await asyncio.gather(*(authorization.initialize() for authorization in authorizations))

        for authorization in authorizations:
            configuration.register_authorization(authorization)
        for role in configuration.roles:
            configuration.register_function_role(role)
        configuration.local_application_id = self._local_app_id
        configuration.base_loaded = True
        logger.info(
            "Sentry initialized: local id=%s, %d authorization(s), %d role(s)",
            self._local_app_id, len(authorizations), len(configuration.function_roles),
        )
        return self

    async def get_authorization_token(self, resource: str, app_id: str | None = None) -> str:
        if app_id is None:
            app_id = self._local_app_id
        authorization = self._registry().application_authorizations.get(app_id)
        if authorization is None:
            raise AuthorizationError(f"Application ID '{app_id}' not found for resource '{resource}'.")
        return await authorization.get_token(resource)

    async def authenticate(self, context: BaseContext) -> BaseSubject:
        return await self._authenticator.authenticate(context)

    async def set_roles(self, context: BaseContext) -> BaseSubject:
        return await self._role_resolver.resolve(context)

    async def authorize(self, context: BaseContext) -> None:
        """Enforce the function role bound to ``context.action``.

        With no role bound the action is open, unless optimistic authorization
        is turned off on the configuration.
        """
        configuration = self._registry()
        role = configuration.function_roles.get(context.action)
        if role is None:
            if configuration.optimistic_authorization:
                return
            raise ForbiddenError(f"No permission defined for action '{context.action}'.")
        if not role.authorize(context.action, context):
            subject_id = context.subject.id if context.subject is not None else None
            logger.warning("Subject %s forbidden for action %s", subject_id, context.action)
            raise ForbiddenError("Forbidden.")

    # -- private helpers -----------------------------------------------------

    def _registry(self) -> Configuration:
        if self._configuration is None:
            raise ConfigurationError("Sentry used before initialize().")
        return self._configuration

    @staticmethod
    async def _resolve_local_id(configuration: Configuration) -> str | None:
        handler = configuration.property_handler
        local_id = None
        if handler is not None:
            local_id = await handler.get_property(MANAGED_IDENTITY_OBJECT_ID, None)
        return local_id or configuration.invocation_id

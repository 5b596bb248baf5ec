"""The fixed invocation lifecycle.

Pattern: Template Lifecycle with Composed Collaborators
--------------------------------------------------------
Every invocation runs the same stages in the same order::

    bootstrap -> initialize -> authenticate -> authorize -> validate -> load
              -> (monitor | process) -> save -> [exception] -> terminate -> done

Subclasses override the stage hooks they need.  Every default hook is a
no-op except ``monitor``, which records a ``default`` diagnostic.  The
context and sentry are built by factories passed to the constructor rather
than by overriding, so one driver serves every trigger type.

A failure in any stage after bootstrap goes to ``exception`` and the
invocation still runs ``terminate`` and completes.  A failure in bootstrap
(or in ``exception``/``terminate`` themselves) completes the platform context
directly with the wrapped error, or with no payload when the error is
marked ``drop``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from faas_lifecycle.auth.sentry import BaseSentry
from faas_lifecycle.auth.subject import BaseSubject
from faas_lifecycle.configuration import Configuration
from faas_lifecycle.errors import FunctionError
from faas_lifecycle.function.context import BaseContext, LogLevel, PlatformContext

logger = logging.getLogger(__name__)

ContextFactory = Callable[[PlatformContext, Configuration], BaseContext]
SentryFactory = Callable[[Configuration], BaseSentry]


def default_context_factory(platform_context: PlatformContext, configuration: Configuration) -> BaseContext:
    return BaseContext(platform_context, configuration)


def default_sentry_factory(configuration: Configuration) -> BaseSentry:
    return BaseSentry()


class BaseFunction:
    def __init__(
        self,
        configuration: Configuration,
        context_factory: ContextFactory | None = None,
        sentry_factory: SentryFactory | None = None,
    ) -> None:
        self._configuration = configuration
        self._context_factory = context_factory or default_context_factory
        self._sentry_factory = sentry_factory or default_sentry_factory

    @property
    def configuration(self) -> Configuration:
        return self._configuration

    async def bootstrap(self, platform_context: PlatformContext) -> BaseContext:
        """Load configuration, then build and wire the sentry and context."""
        await self._configuration.load(platform_context)
        sentry = self._sentry_factory(self._configuration)
        context = self._context_factory(platform_context, self._configuration)
        await sentry.initialize(self._configuration)
        await context.initialize(self._configuration)
        context.sentry = sentry
        return context

    # -- stage hooks ---------------------------------------------------------

    async def initialize(self, context: BaseContext) -> None:
        """Runs first after bootstrap."""

    async def authenticate(self, context: BaseContext) -> BaseSubject:
        context.subject = await context.sentry.authenticate(context)
        return await context.sentry.set_roles(context)

    async def authorize(self, context: BaseContext) -> None:
        await context.sentry.authorize(context)

    async def validate(self, context: BaseContext) -> None:
        """Input validation; open by default."""

    async def load(self, context: BaseContext) -> None:
        pass

    async def monitor(self, context: BaseContext) -> None:
        context.log("No monitoring checks performed, monitor not overridden.",
                    LogLevel.WARN, "BaseFunction.monitor")
        context.monitor_response.add_passed_diagnostic("default", "Monitor not overridden.")

    async def process(self, context: BaseContext) -> None:
        pass

    async def save(self, context: BaseContext) -> None:
        pass

    async def exception(self, context: BaseContext, exception: BaseException) -> None:
        """Translate a stage failure into a response; does nothing by default."""

    async def terminate(self, context: BaseContext) -> None:
        pass

    # -- driver --------------------------------------------------------------

    async def execute(self, platform_context: PlatformContext) -> None:
        """Run the whole lifecycle for one platform invocation."""
        try:
            context = await self.bootstrap(platform_context)
        except Exception as exc:
            logger.error("Critical unhandled exception during bootstrap")
            self._unhandled(platform_context, exc)
            return

        try:
            await self._run_stages(context)
            context.log("Terminate Lifecycle.", LogLevel.INFO, "BaseFunction.execute")
            await self.terminate(context)
            context.log("Function lifecycle complete.", LogLevel.INFO, "BaseFunction.execute")
        except Exception as exc:
            context.log("Critical Exception Lifecycle.", LogLevel.ERROR, "BaseFunction.execute")
            self._unhandled(platform_context, exc)
            return
        context.done()

    async def _run_stages(self, context: BaseContext) -> None:
        try:
            await self.initialize(context)
            context.log("Authenticate Lifecycle.", LogLevel.TRACE, "BaseFunction.execute")
            context.subject = await self.authenticate(context)
            context.log("Authorize Lifecycle.", LogLevel.TRACE, "BaseFunction.execute")
            await self.authorize(context)
            context.log("Validate Lifecycle.", LogLevel.TRACE, "BaseFunction.execute")
            await self.validate(context)
            context.log("Load Lifecycle.", LogLevel.TRACE, "BaseFunction.execute")
            await self.load(context)
            if context.is_monitor_invocation:
                context.log("Monitor Lifecycle.", LogLevel.TRACE, "BaseFunction.execute")
                await self.monitor(context)
            else:
                context.log("Process Lifecycle.", LogLevel.TRACE, "BaseFunction.execute")
                await self.process(context)
            context.log("Save Lifecycle.", LogLevel.TRACE, "BaseFunction.execute")
            await self.save(context)
        except Exception as exc:
            context.log(f"Exception Lifecycle: {exc}", LogLevel.ERROR, "BaseFunction.execute")
            await self.exception(context, exc)

    @staticmethod
    def _unhandled(platform_context: Any, exc: BaseException | None) -> None:
        error = FunctionError.wrap(exc)
        cause = error.cause or error
        logger.error("Unhandled exception (%s): %s", type(cause).__name__, cause, exc_info=cause)
        if error.drop:
            platform_context.done()
        else:
            platform_context.done(error)

"""Per-invocation state.

``BaseContext`` wraps the hosting platform's invocation context.  It is built
fresh for every invocation by the function's context factory and owns
nothing that outlives it.
"""

from __future__ import annotations

import enum
import json
import logging
import uuid
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from faas_lifecycle.auth.sentry import BaseSentry
    from faas_lifecycle.auth.subject import BaseSubject
    from faas_lifecycle.configuration import Configuration

logger = logging.getLogger(__name__)


class PlatformContext(Protocol):
    """What the lifecycle needs from the host's invocation context."""

    bindings: dict[str, Any]
    invocation_id: str
    trace_context: Any
    log: Any

    def done(self, value: Any = None) -> None: ...


class LogLevel(enum.IntEnum):
    TRACE = 0
    VERBOSE = 1
    INFO = 2
    WARN = 3
    ERROR = 4


_LOG_METHODS = {
    LogLevel.TRACE: "debug",
    LogLevel.VERBOSE: "debug",
    LogLevel.INFO: "info",
    LogLevel.WARN: "warning",
    LogLevel.ERROR: "error",
}


def trace_parent(platform_context: Any) -> str | None:
    """Return the W3C ``traceparent`` carried by the invocation, if any."""
    trace_context = getattr(platform_context, "trace_context", None)
    if trace_context is None:
        return None
    if isinstance(trace_context, dict):
        return trace_context.get("traceparent")
    return getattr(trace_context, "trace_parent", None) or getattr(trace_context, "traceparent", None)


class MonitorResponse:
    """Diagnostics gathered by a monitor invocation."""

    def __init__(self) -> None:
        self._passed: dict[str, str] = {}
        self._failed: dict[str, str] = {}

    @property
    def passed(self) -> dict[str, str]:
        return self._passed

    @property
    def failed(self) -> dict[str, str]:
        return self._failed

    def add_passed_diagnostic(self, name: str, message: str) -> None:
        self._passed[name] = message

    def add_failed_diagnostic(self, name: str, message: str) -> None:
        self._failed[name] = message

    @property
    def result(self) -> str:
        return "FAILED" if self._failed else "PASSED"

    def to_dict(self) -> dict[str, Any]:
        return {"result": self.result, "passed": dict(self._passed), "failed": dict(self._failed)}


class BaseContext:
    def __init__(
        self,
        platform_context: PlatformContext,
        configuration: Configuration,
        monitor: bool = False,
    ) -> None:
        self._platform_context = platform_context
        self._configuration = configuration
        self._request_id = str(uuid.uuid4())
        self._trace_id: str | None = None
        self._monitor = monitor
        self._monitor_response: MonitorResponse | None = None
        self._subject: BaseSubject | None = None
        self._action = "process"
        self._sentry: BaseSentry | None = None
        self._session: dict[str, Any] = {}

    async def initialize(self, configuration: Configuration) -> BaseContext:
        if self._monitor:
            self._monitor_response = MonitorResponse()
        self._trace_id = trace_parent(self._platform_context)
        return self

    @property
    def platform_context(self) -> PlatformContext:
        return self._platform_context

    @property
    def configuration(self) -> Configuration:
        return self._configuration

    @property
    def name(self) -> str:
        return self._configuration.name

    @property
    def invocation_id(self) -> str | None:
        return getattr(self._platform_context, "invocation_id", None)

    @property
    def request_id(self) -> str:
        return self._request_id

    @property
    def trace_id(self) -> str | None:
        return self._trace_id

    @property
    def is_monitor_invocation(self) -> bool:
        return self._monitor

    @property
    def monitor_response(self) -> MonitorResponse | None:
        return self._monitor_response

    @property
    def subject(self) -> BaseSubject | None:
        return self._subject

    @subject.setter
    def subject(self, subject: BaseSubject | None) -> None:
        self._subject = subject

    @property
    def action(self) -> str:
        return self._action

    @action.setter
    def action(self, action: str) -> None:
        self._action = action.lower()

    @property
    def sentry(self) -> BaseSentry | None:
        return self._sentry

    @sentry.setter
    def sentry(self, sentry: BaseSentry | None) -> None:
        self._sentry = sentry

    @property
    def session(self) -> dict[str, Any]:
        return self._session

    # -- bindings and session ------------------------------------------------

    def get_binding(self, name: str, default: Any = None) -> Any:
        return self._platform_context.bindings.get(name, default)

    def set_binding(self, name: str, value: Any) -> None:
        self._platform_context.bindings[name] = value

    def get_session_property(self, name: str, default: Any = None) -> Any:
        value = self._session.get(name)
        return default if value is None else value

    def set_session_property(self, name: str, value: Any) -> BaseContext:
        self._session[name] = value
        return self

    def load_session_properties(self, source: dict[str, Any]) -> BaseContext:
        self._session.update(source)
        return self

    async def get_property(self, key: str, default: Any = None) -> Any:
        return await self._configuration.property_handler.get_property(key, default)

    # -- logging -------------------------------------------------------------

    def log(self, message: Any = "[NO MESSAGE]", level: LogLevel = LogLevel.TRACE, subject: str | None = None) -> None:
        """Log through the platform logger, tagged with the invocation ids.

        ``[name][LEVEL n][subject][invocation id]:[request id]:message``
        """
        out = f"[{self.name}][LEVEL {int(level)}]"
        if subject is not None:
            out += f"[{subject}]"
        out += f"[{self.invocation_id}]:[{self._request_id}]:{message}"
        sink = getattr(self._platform_context, "log", None) or logger
        getattr(sink, _LOG_METHODS[LogLevel(level)])(out)

    def log_object_as_json(self, obj: Any, level: LogLevel = LogLevel.TRACE, subject: str | None = None) -> None:
        self.log(json.dumps(obj, default=str), level, subject)

    def done(self, value: Any = None) -> None:
        if value is None:
            self._platform_context.done()
        else:
            self._platform_context.done(value)

"""Error taxonomy shared by every stage of the function lifecycle.

Every failure that crosses a component boundary is a ``FunctionError``.  The
``code`` mirrors an HTTP status so that trigger adapters can translate it
directly, and ``drop`` tells the lifecycle to complete the invocation without
surfacing the error to the platform (used for expired or ignorable input).
"""

from __future__ import annotations

from typing import Any


class FunctionError(Exception):
    """Base class for all lifecycle errors."""

    default_code = 500

    def __init__(
        self,
        message: str,
        code: int | None = None,
        drop: bool = False,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = self.default_code if code is None else code
        self.drop = drop
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code, "drop": self.drop}

    def __str__(self) -> str:
        return f"[{self.code}][{self.drop}]: {self.message}"

    @staticmethod
    def wrap(exc: BaseException | None, drop: bool = False) -> FunctionError:
        """Return *exc* as a ``FunctionError``.

        Framework errors pass through untouched.  A builtin
        ``NotImplementedError`` maps to a 501, anything else is wrapped with a
        generic message and kept as ``cause``.
        """
        if isinstance(exc, FunctionError):
            return exc
        if exc is None:
            return WrappedPlatformError("Unhandled server error.", drop=drop)
        if isinstance(exc, NotImplementedError):
            return NotImplementedFunctionError(str(exc) or "Not Implemented.", drop=drop, cause=exc)
        return WrappedPlatformError("Unhandled server error.", drop=drop, cause=exc)


class ConfigurationError(FunctionError):
    """Missing or invalid settings, or an unreachable configuration backend."""


class AuthorizationError(FunctionError):
    """Unregistered resource/application or a failed token acquisition."""

    default_code = 401


class ForbiddenError(FunctionError):
    """The subject is authenticated but not permitted to run the action."""

    default_code = 403


class NotImplementedFunctionError(FunctionError):
    default_code = 501


class ValidationError(FunctionError):
    """Invalid input; ``tag`` names the offending field."""

    default_code = 400

    def __init__(
        self,
        message: str,
        tag: str = "",
        code: int | None = None,
        drop: bool = False,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, code=code, drop=drop, cause=cause)
        self.tag = tag

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["tag"] = self.tag
        return data

    def __str__(self) -> str:
        return f"[{self.tag}]{super().__str__()}"


class WrappedPlatformError(FunctionError):
    """A non-framework exception surfaced through the lifecycle."""

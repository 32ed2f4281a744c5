"""Shared error taxonomy for host-converge."""

from __future__ import annotations

from typing import Any, Mapping


def _normalize_context_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return normalize_context(value)
    if isinstance(value, (list, tuple)):
        return [_normalize_context_value(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def normalize_context(context: Mapping[str, Any]) -> dict[str, Any]:
    """Return a JSON-friendly copy of an error context mapping."""
    return {key: _normalize_context_value(val) for key, val in context.items()}


class HCError(Exception):
    """Base error type for typed failure handling."""

    def __init__(
        self,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.context = normalize_context(context or {})
        if cause is not None:
            self.__cause__ = cause

    @property
    def error_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.error_type, "message": str(self), "context": self.context}


class ConfigurationError(HCError):
    """Failure due to an invalid plan, inventory or engine configuration."""


class PlanValidationError(HCError):
    """A plan failed build-time validation; no host has been contacted."""


class UnknownHandler(PlanValidationError):
    """A task notifies a handler name that was never declared."""


class UnreachableHost(HCError):
    """The transport could not contact the target host."""


class TimeoutExceeded(HCError):
    """A remote operation ran past the per-task deadline."""


class UnresolvedVariable(HCError):
    """An interpolation or `when` reference has no binding in the namespace."""


class ModuleExecutionError(HCError):
    """A task module failed; context carries the module-specific detail."""


class FactUnavailable(HCError):
    """A fact key is not supported by the gatherer."""


class RunCancelled(HCError):
    """The run was cancelled before this host finished converging."""


def error_to_payload(error: HCError) -> dict[str, Any]:
    """Convert an HCError to a host result/report payload."""
    return {
        "error_type": error.error_type,
        "error": str(error),
        "error_context": error.context,
    }

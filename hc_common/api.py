"""Public API surface for hc_common."""

from hc_common.errors import (
    ConfigurationError,
    FactUnavailable,
    HCError,
    ModuleExecutionError,
    PlanValidationError,
    RunCancelled,
    TimeoutExceeded,
    UnknownHandler,
    UnreachableHost,
    UnresolvedVariable,
    error_to_payload,
)
from hc_common.logging import configure_logging
from hc_common.models.hosts import RemoteHostConfig
from hc_common.transport import (
    CommandResult,
    LocalTransport,
    SshTransport,
    Transport,
)

__all__ = [
    "CommandResult",
    "ConfigurationError",
    "FactUnavailable",
    "HCError",
    "LocalTransport",
    "ModuleExecutionError",
    "PlanValidationError",
    "RemoteHostConfig",
    "RunCancelled",
    "SshTransport",
    "TimeoutExceeded",
    "Transport",
    "UnknownHandler",
    "UnreachableHost",
    "UnresolvedVariable",
    "configure_logging",
    "error_to_payload",
]

"""Plan building, per-host convergence and run coordination."""

from hc_controller.api import (
    ConvergenceEngine,
    EngineConfig,
    ExecutionPlan,
    HostResult,
    HostState,
    Outcome,
    RunCoordinator,
    RunReport,
    RunService,
    StopToken,
    TaskGraphBuilder,
    build_plan,
)

__all__ = [
    "ConvergenceEngine",
    "EngineConfig",
    "ExecutionPlan",
    "HostResult",
    "HostState",
    "Outcome",
    "RunCoordinator",
    "RunReport",
    "RunService",
    "StopToken",
    "TaskGraphBuilder",
    "build_plan",
]

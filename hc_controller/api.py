"""Public controller API surface."""

from hc_controller.engine.convergence import ConvergenceEngine
from hc_controller.engine.coordinator import RunCoordinator, generate_run_id
from hc_controller.engine.executor import ModuleExecutor
from hc_controller.engine.facts import FactGatherer
from hc_controller.engine.plan_builder import TaskGraphBuilder, build_plan
from hc_controller.engine.variables import VariableNamespace
from hc_controller.models.config import EngineConfig
from hc_controller.models.outcome import HostResult, Outcome, RunReport, TaskRecord
from hc_controller.models.plan import (
    ExecutionPlan,
    HandlerSpec,
    PlaybookSpec,
    TaskInvocation,
    TaskSpec,
)
from hc_controller.models.state import HostState, HostStateMachine
from hc_controller.services.plan_loader import (
    Inventory,
    load_inventory,
    load_playbook,
    parse_playbook,
)
from hc_controller.services.run_service import RunRequest, RunService
from hc_controller.stop_token import StopToken

__all__ = [
    "ConvergenceEngine",
    "EngineConfig",
    "ExecutionPlan",
    "FactGatherer",
    "HandlerSpec",
    "HostResult",
    "HostState",
    "HostStateMachine",
    "Inventory",
    "ModuleExecutor",
    "Outcome",
    "PlaybookSpec",
    "RunCoordinator",
    "RunReport",
    "RunRequest",
    "RunService",
    "StopToken",
    "TaskGraphBuilder",
    "TaskInvocation",
    "TaskRecord",
    "TaskSpec",
    "VariableNamespace",
    "build_plan",
    "generate_run_id",
    "load_inventory",
    "load_playbook",
    "parse_playbook",
]

"""Per-host convergence: main sequence, then pending handlers."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import structlog

from hc_common.errors import RunCancelled, UnreachableHost, error_to_payload
from hc_common.models.hosts import RemoteHostConfig
from hc_controller.engine.executor import ModuleExecutor
from hc_controller.engine.variables import VariableNamespace
from hc_controller.models.outcome import HostResult, TaskRecord
from hc_controller.models.plan import ExecutionPlan, TaskInvocation
from hc_controller.models.state import HostState, HostStateMachine
from hc_controller.stop_token import StopToken

logger = logging.getLogger(__name__)


class ConvergenceEngine:
    """Walks an ExecutionPlan for exactly one host.

    Owns the host's VariableNamespace, its state machine and its records;
    none of them are visible to other hosts.
    """

    def __init__(
        self,
        plan: ExecutionPlan,
        host: RemoteHostConfig,
        executor: ModuleExecutor,
        *,
        stop_token: Optional[StopToken] = None,
    ) -> None:
        self.plan = plan
        self.host = host
        self.executor = executor
        self.stop_token = stop_token
        self.namespace = VariableNamespace.for_host(plan.variables, host)
        self.state_machine = HostStateMachine()
        self._records: List[TaskRecord] = []
        # dict preserves first-notified order; re-marking is a no-op
        self._pending_handlers: Dict[str, None] = {}
        self._failed_task: Optional[str] = None
        self._error: Optional[dict] = None
        self._cancelled = False

    @property
    def state(self) -> HostState:
        return self.state_machine.state

    @property
    def pending_handlers(self) -> List[str]:
        return list(self._pending_handlers)

    def run(self) -> HostResult:
        """Converge the host and return its result."""
        with structlog.contextvars.bound_contextvars(host=self.host.name):
            logger.info("Converging %s (%d tasks)", self.host.name, len(self.plan.tasks))
            if self._run_main_sequence():
                self.state_machine.transition(HostState.HANDLER_PHASE)
                if self._run_handlers():
                    self.state_machine.transition(HostState.SUCCEEDED)
            logger.info("Host %s finished in state %s", self.host.name, self.state.value)
        return self.result()

    def result(self) -> HostResult:
        return HostResult(
            host=self.host.name,
            state=self.state,
            records=tuple(self._records),
            failed_task=self._failed_task,
            error=self._error,
            cancelled=self._cancelled,
        )

    def _run_main_sequence(self) -> bool:
        for task in self.plan.tasks:
            if self._cancel_requested(task):
                return False
            record = self._execute(task)
            if record.failed:
                if self._is_fatal(task, record):
                    self._fail(task, record)
                    return False
                logger.warning("Task '%s' failed; ignoring", record.name)
                continue
            if record.changed:
                for handler_name in task.notify:
                    self._pending_handlers.setdefault(handler_name, None)
        return True

    def _run_handlers(self) -> bool:
        for handler_name in self.pending_handlers:
            handler = self.plan.handler(handler_name)
            if self._cancel_requested(handler):
                return False
            record = self._execute(handler)
            if record.failed and self._is_fatal(handler, record):
                self._fail(handler, record)
                return False
        return True

    def _execute(self, task: TaskInvocation) -> TaskRecord:
        record = self.executor.apply(self.host, task, self.namespace)
        if task.register:
            payload = record.register_payload()
            if task.has_item:
                self.namespace.register_loop_item(task.register, payload, task.loop_index or 0)
            else:
                self.namespace.register(task.register, payload)
        stored = record.redacted() if task.no_log else record
        self._records.append(stored)
        log = logger.warning if record.failed else logger.info
        log("%s [%s] %s", record.outcome.value, stored.name, stored.detail)
        return record

    @staticmethod
    def _is_fatal(task: TaskInvocation, record: TaskRecord) -> bool:
        if record.error and record.error.get("error_type") == UnreachableHost.__name__:
            return True
        return not task.ignore_errors

    def _fail(self, task: TaskInvocation, record: TaskRecord) -> None:
        self._failed_task = record.name
        self._error = self._records[-1].error
        self.state_machine.transition(HostState.FAILED, reason=record.detail)

    def _cancel_requested(self, task: TaskInvocation) -> bool:
        if self.stop_token is None or not self.stop_token.should_stop():
            return False
        error = RunCancelled(
            f"Run cancelled before '{task.display_name}'",
            context={"host": self.host.name, "next_task": task.display_name},
        )
        self._cancelled = True
        self._error = error_to_payload(error)
        self.state_machine.transition(HostState.FAILED, reason=str(error))
        logger.warning("Stop requested; %s abandoned before '%s'", self.host.name, task.display_name)
        return True

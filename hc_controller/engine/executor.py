"""Apply one task invocation on one host and report its outcome."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from hc_common.errors import (
    FactUnavailable,
    HCError,
    ModuleExecutionError,
    error_to_payload,
)
from hc_common.models.hosts import RemoteHostConfig
from hc_common.transport import Transport
from hc_controller.engine.facts import FactGatherer
from hc_controller.engine.variables import VariableNamespace
from hc_controller.models.outcome import Outcome, TaskRecord
from hc_controller.models.plan import TaskInvocation
from hc_modules.interface import FactKey, ModuleContext, TaskModule
from hc_modules.registry import ModuleRegistry

logger = logging.getLogger(__name__)


class ModuleExecutor:
    """The only component allowed to mutate remote state.

    Stateless across hosts: everything host-specific arrives as arguments, so
    a single instance is shared by every per-host worker.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        transport: Transport,
        *,
        gatherer: Optional[FactGatherer] = None,
        default_timeout: Optional[float] = None,
        plan_become: bool = False,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.gatherer = gatherer or FactGatherer(transport)
        self.default_timeout = default_timeout
        self.plan_become = plan_become

    def apply(
        self,
        host: RemoteHostConfig,
        task: TaskInvocation,
        namespace: VariableNamespace,
    ) -> TaskRecord:
        """Evaluate, resolve, gather, converge. Never raises for task failures."""
        started = time.monotonic()
        extra = {"item": task.item} if task.has_item else None
        try:
            if not namespace.evaluate(task.when, extra):
                return self._record(task, Outcome.SKIPPED, started, detail="condition was false")
            raw_params = namespace.resolve(dict(task.params), extra)
            module = self.registry.get(task.module)
            params = self._parse_params(module, task, raw_params)
            ctx = ModuleContext(
                host,
                self.transport,
                become=self._become(host, task),
                deadline=self._deadline(task, started),
            )
            current_state = self._gather(ctx, module.fact_keys(params))
            result = module.apply(ctx, params, current_state)
            # a module that finished late still failed its task
            ctx.remaining()
        except HCError as exc:
            return self._failed(task, exc, started)
        except Exception as exc:
            logger.exception("Module %s crashed on %s", task.module, host.name)
            wrapped = ModuleExecutionError(
                f"Unexpected error in module {task.module}: {exc}",
                context={"module": task.module},
                cause=exc,
            )
            return self._failed(task, wrapped, started)

        outcome = Outcome.CHANGED if result.changed else Outcome.OK
        return self._record(task, outcome, started, detail=result.msg, data=result.data)

    def _parse_params(
        self, module: TaskModule, task: TaskInvocation, raw: Mapping[str, Any]
    ) -> Any:
        try:
            return module.parse_params(raw)
        except ValidationError as exc:
            raise ModuleExecutionError(
                f"Invalid parameters for module {task.module}: {exc.error_count()} error(s)",
                context={
                    "module": task.module,
                    "errors": [
                        f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
                        for error in exc.errors()
                    ],
                },
                cause=exc,
            ) from exc

    def _gather(self, ctx: ModuleContext, keys: List[FactKey]) -> Dict[FactKey, Any]:
        supported: List[FactKey] = []
        for key in keys:
            if self.gatherer.supports(key):
                supported.append(key)
            elif key.required:
                raise FactUnavailable(
                    f"Required fact '{key}' is not supported",
                    context={"fact": str(key), "host": ctx.host.name},
                )
            else:
                logger.debug("Fact %s unavailable on %s, treated as unknown", key, ctx.host.name)
        if not supported:
            return {}
        return self.gatherer.query(
            ctx.host, supported, deadline=ctx.deadline, become=ctx.become
        )

    def _become(self, host: RemoteHostConfig, task: TaskInvocation) -> bool:
        if task.become is not None:
            return task.become
        return host.become or self.plan_become

    def _deadline(self, task: TaskInvocation, started: float) -> Optional[float]:
        timeout = task.timeout or self.default_timeout
        return started + timeout if timeout else None

    def _failed(
        self,
        task: TaskInvocation,
        error: HCError,
        started: float,
    ) -> TaskRecord:
        return self._record(
            task,
            Outcome.FAILED,
            started,
            detail=str(error),
            error=error_to_payload(error),
            ignored=task.ignore_errors,
        )

    @staticmethod
    def _record(
        task: TaskInvocation,
        outcome: Outcome,
        started: float,
        *,
        detail: str = "",
        data: Optional[Mapping[str, Any]] = None,
        error: Optional[Dict[str, Any]] = None,
        ignored: bool = False,
    ) -> TaskRecord:
        return TaskRecord(
            task_id=task.task_id,
            name=task.display_name,
            module=task.module,
            outcome=outcome,
            detail=detail,
            error=error,
            data=dict(data or {}),
            duration_seconds=round(time.monotonic() - started, 3),
            ignored=ignored and outcome is Outcome.FAILED,
            handler=task.is_handler,
        )

"""Turn declared tasks and handlers into a validated ExecutionPlan."""

from __future__ import annotations

import copy
import logging
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence

from hc_common.errors import PlanValidationError, UnknownHandler, UnresolvedVariable
from hc_controller.engine.variables import VariableNamespace, compile_condition
from hc_controller.models.plan import (
    ExecutionPlan,
    HandlerSpec,
    PlaybookSpec,
    TaskInvocation,
    TaskSpec,
)
from hc_modules.registry import ModuleRegistry

logger = logging.getLogger(__name__)


class TaskGraphBuilder:
    """Validates a plan once, before any host is contacted.

    The result does not depend on any host and is reused for all of them.
    """

    def __init__(self, registry: Optional[ModuleRegistry] = None) -> None:
        self._registry = registry

    def build(
        self,
        task_list: Sequence[TaskSpec],
        handler_list: Sequence[HandlerSpec] = (),
        *,
        variables: Optional[Mapping[str, Any]] = None,
        become: bool = False,
        name: Optional[str] = None,
    ) -> ExecutionPlan:
        declared = copy.deepcopy(dict(variables or {}))
        handlers = self._build_handlers(handler_list)

        tasks: List[TaskInvocation] = []
        for position, spec in enumerate(task_list):
            self._validate_common(spec, f"task #{position + 1}")
            for handler_name in spec.notify:
                if handler_name not in handlers:
                    raise UnknownHandler(
                        f"Task '{spec.display_name}' notifies undeclared handler '{handler_name}'",
                        context={"task": spec.display_name, "handler": handler_name},
                    )
            tasks.extend(self._expand(spec, str(position + 1), declared))

        logger.debug(
            "Built plan with %d task invocation(s) and %d handler(s)",
            len(tasks),
            len(handlers),
        )
        return ExecutionPlan(
            tasks=tuple(tasks),
            handlers=MappingProxyType(handlers),
            variables=MappingProxyType(declared),
            become=become,
            name=name,
        )

    def build_playbook(self, playbook: PlaybookSpec) -> ExecutionPlan:
        return self.build(
            playbook.tasks,
            playbook.handlers,
            variables=playbook.vars,
            become=playbook.become,
            name=playbook.name,
        )

    def _build_handlers(
        self, handler_list: Sequence[HandlerSpec]
    ) -> Dict[str, TaskInvocation]:
        handlers: Dict[str, TaskInvocation] = {}
        for spec in handler_list:
            handler_name = spec.display_name
            if handler_name in handlers:
                raise PlanValidationError(
                    f"Duplicate handler name '{handler_name}'",
                    context={"handler": handler_name},
                )
            if spec.notify:
                raise PlanValidationError(
                    f"Handler '{handler_name}' notifies {spec.notify}; handlers cannot notify",
                    context={"handler": handler_name},
                )
            if spec.loop is not None:
                raise PlanValidationError(
                    f"Handler '{handler_name}' declares a loop; handlers run once",
                    context={"handler": handler_name},
                )
            self._validate_common(spec, f"handler '{handler_name}'")
            handlers[handler_name] = self._invocation(
                spec, f"handler:{handler_name}", is_handler=True
            )
        return handlers

    def _validate_common(self, spec: TaskSpec, label: str) -> None:
        if self._registry is not None and spec.module not in self._registry:
            raise PlanValidationError(
                f"{label} uses unknown module '{spec.module}'",
                context={"task": spec.display_name, "module": spec.module},
            )
        if isinstance(spec.when, str):
            compile_condition(spec.when)

    def _expand(
        self, spec: TaskSpec, task_id: str, declared: Mapping[str, Any]
    ) -> List[TaskInvocation]:
        if spec.loop is None:
            return [self._invocation(spec, task_id)]
        items = self._loop_items(spec, declared)
        return [
            self._invocation(
                spec,
                f"{task_id}.{index + 1}",
                item=item,
                loop_index=index,
                loop_size=len(items),
            )
            for index, item in enumerate(items)
        ]

    @staticmethod
    def _loop_items(spec: TaskSpec, declared: Mapping[str, Any]) -> List[Any]:
        if isinstance(spec.loop, list):
            return list(spec.loop)
        try:
            items = VariableNamespace(declared).resolve(spec.loop)
        except UnresolvedVariable as exc:
            raise PlanValidationError(
                f"Loop of task '{spec.display_name}' must be a list or a declared list variable",
                context={"task": spec.display_name, "loop": spec.loop},
                cause=exc,
            ) from exc
        if not isinstance(items, list):
            raise PlanValidationError(
                f"Loop of task '{spec.display_name}' resolved to {type(items).__name__}, not a list",
                context={"task": spec.display_name, "loop": spec.loop},
            )
        return items

    @staticmethod
    def _invocation(
        spec: TaskSpec,
        task_id: str,
        *,
        is_handler: bool = False,
        **loop: Any,
    ) -> TaskInvocation:
        return TaskInvocation(
            task_id=task_id,
            name=spec.display_name,
            module=spec.module,
            params=MappingProxyType(dict(spec.params)),
            when=spec.when,
            register=spec.register_as,
            ignore_errors=spec.ignore_errors,
            notify=tuple(spec.notify),
            no_log=spec.no_log,
            become=spec.become,
            timeout=spec.timeout,
            is_handler=is_handler,
            **loop,
        )


def build_plan(
    task_list: Sequence[TaskSpec],
    handler_list: Sequence[HandlerSpec] = (),
    *,
    variables: Optional[Mapping[str, Any]] = None,
    registry: Optional[ModuleRegistry] = None,
) -> ExecutionPlan:
    """Convenience wrapper around :class:`TaskGraphBuilder`."""
    return TaskGraphBuilder(registry).build(task_list, handler_list, variables=variables)

"""Plan input models and the validated, host-independent execution plan."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator, model_validator

TASK_KEYWORDS = frozenset(
    {
        "name",
        "module",
        "params",
        "args",
        "when",
        "register",
        "ignore_errors",
        "notify",
        "loop",
        "no_log",
        "become",
        "timeout",
    }
)


class TaskSpec(BaseModel):
    """One declared task.

    Accepts both ``{module: apt, params: {...}}`` and the short form
    ``{apt: {...}}``. A string in place of the params mapping becomes
    ``{"cmd": <string>}``; ``args`` are merged into params.
    """

    name: Optional[str] = Field(default=None, description="Display name of the task")
    module: str = Field(description="Registered module name")
    params: Dict[str, Any] = Field(default_factory=dict, description="Module parameters")
    when: Optional[Union[bool, str]] = Field(default=None, description="Condition evaluated per host")
    register_as: Optional[str] = Field(
        default=None, alias="register", description="Variable receiving the task result"
    )
    ignore_errors: bool = Field(default=False, description="Continue the host after a failure")
    notify: List[str] = Field(default_factory=list, description="Handlers to mark pending on change")
    loop: Optional[Union[List[Any], str]] = Field(default=None, description="Items expanded at build time")
    no_log: bool = Field(default=False, description="Hide output in logs and reports")
    become: Optional[bool] = Field(default=None, description="Override the host privilege escalation")
    timeout: Optional[float] = Field(default=None, gt=0, description="Per-task timeout in seconds")

    model_config = {
        "extra": "forbid",
    }

    @model_validator(mode="before")
    @classmethod
    def _extract_module(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        args = data.pop("args", None) or {}
        if "module" not in data:
            candidates = [key for key in data if key not in TASK_KEYWORDS]
            if len(candidates) != 1:
                raise ValueError(
                    f"task {data.get('name')!r} must name exactly one module, got {candidates}"
                )
            module = candidates[0]
            data["module"] = module
            data["params"] = data.pop(module)
        params = data.get("params")
        if params is None:
            params = {}
        elif isinstance(params, str):
            params = {"cmd": params}
        data["params"] = {**params, **args}
        return data

    @field_validator("notify", mode="before")
    @classmethod
    def _notify_as_list(cls, value: Union[str, List[str], None]) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return list(value)

    @property
    def display_name(self) -> str:
        return self.name or self.module


class HandlerSpec(TaskSpec):
    """A task reachable only through ``notify``; the name is mandatory."""

    @model_validator(mode="after")
    def validate_name(self) -> "HandlerSpec":
        if not self.name or not self.name.strip():
            raise ValueError("handlers must have a non-empty name")
        return self


class PlaybookSpec(BaseModel):
    """A parsed plan file: declared variables, tasks and handlers."""

    name: Optional[str] = None
    hosts: Optional[str] = Field(default=None, description="Inventory pattern the plan targets")
    become: bool = Field(default=False, description="Escalate privileges for every task")
    vars: Dict[str, Any] = Field(default_factory=dict)
    tasks: List[TaskSpec] = Field(default_factory=list)
    handlers: List[HandlerSpec] = Field(default_factory=list)

    model_config = {
        "extra": "ignore",
    }


_NO_ITEM = object()


@dataclass(frozen=True)
class TaskInvocation:
    """A single executable unit of the plan (one loop item, if any)."""

    task_id: str
    name: str
    module: str
    params: Mapping[str, Any]
    when: Optional[Union[bool, str]] = None
    register: Optional[str] = None
    ignore_errors: bool = False
    notify: Tuple[str, ...] = ()
    no_log: bool = False
    become: Optional[bool] = None
    timeout: Optional[float] = None
    item: Any = _NO_ITEM
    loop_index: Optional[int] = None
    loop_size: int = 0
    is_handler: bool = False

    @property
    def has_item(self) -> bool:
        return self.item is not _NO_ITEM

    @property
    def display_name(self) -> str:
        if self.has_item:
            return f"{self.name} (item={self.item})"
        return self.name


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered main sequence plus handler lookup; shared read-only across hosts."""

    tasks: Tuple[TaskInvocation, ...]
    handlers: Mapping[str, TaskInvocation] = field(
        default_factory=lambda: MappingProxyType({})
    )
    variables: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    become: bool = False
    name: Optional[str] = None

    def handler(self, name: str) -> TaskInvocation:
        return self.handlers[name]

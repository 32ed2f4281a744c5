"""Contract every task module implements."""

from __future__ import annotations

import shlex
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel

from hc_common.errors import ModuleExecutionError, TimeoutExceeded
from hc_common.models.hosts import RemoteHostConfig
from hc_common.transport import CommandResult, Transport


@dataclass(frozen=True)
class FactKey:
    """One piece of host state a module needs before deciding what to do.

    ``required`` does not take part in equality, so a module can look a fact
    up with ``FactKey(kind, target)`` regardless of how it was declared.
    """

    kind: str
    target: str
    required: bool = field(default=True, compare=False)

    def __str__(self) -> str:
        return f"{self.kind}:{self.target}"


@dataclass
class ModuleResult:
    """What a module did: ``changed`` is False when state already matched."""

    changed: bool
    msg: str = ""
    data: Dict[str, Any] = field(default_factory=dict)


class BaseModuleParams(BaseModel):
    """Base model for module parameters; unknown keys are rejected."""

    model_config = {
        "extra": "forbid",
    }


class ModuleContext:
    """Host, transport and deadline handed to a module for one invocation."""

    def __init__(
        self,
        host: RemoteHostConfig,
        transport: Transport,
        *,
        become: bool = False,
        deadline: Optional[float] = None,
    ) -> None:
        self.host = host
        self.transport = transport
        self.become = become
        self.deadline = deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the task deadline, or None when unbounded."""
        return time_left(self.deadline, self.host)

    def run(
        self,
        command: str,
        *,
        check: bool = True,
        input_data: Optional[bytes] = None,
    ) -> CommandResult:
        """Execute ``command``; raise ModuleExecutionError on non-zero when ``check``."""
        result = self.transport.execute(
            self.host,
            command,
            timeout=self.remaining(),
            become=self.become,
            input_data=input_data,
        )
        if check and not result.ok:
            raise command_failed(command, result)
        return result

    def put_file(
        self,
        data: bytes,
        remote_path: str,
        *,
        mode: Optional[str] = None,
        owner: Optional[str] = None,
        group: Optional[str] = None,
    ) -> None:
        result = self.transport.put_file(
            self.host,
            data,
            remote_path,
            mode=mode,
            owner=owner,
            group=group,
            timeout=self.remaining(),
            become=self.become,
        )
        if not result.ok:
            raise command_failed(f"write {remote_path}", result)


def time_left(deadline: Optional[float], host: RemoteHostConfig) -> Optional[float]:
    """Seconds until ``deadline`` (a monotonic timestamp); raise once it has passed."""
    if deadline is None:
        return None
    left = deadline - time.monotonic()
    if left <= 0:
        raise TimeoutExceeded(
            f"Task deadline exceeded on {host.name}",
            context={"host": host.name},
        )
    return left


def command_failed(command: str, result: CommandResult) -> ModuleExecutionError:
    """Build the error raised for a failing remote command."""
    detail = result.stderr.strip() or result.stdout.strip() or "no output"
    return ModuleExecutionError(
        f"Command exited with rc={result.rc}: {detail}",
        context={
            "cmd": command,
            "rc": result.rc,
            "stdout": result.stdout.rstrip("\n"),
            "stderr": result.stderr.rstrip("\n"),
        },
    )


def join_commands(commands: List[str]) -> str:
    return " && ".join(commands)


def quote(value: str) -> str:
    return shlex.quote(value)


class TaskModule(ABC):
    """
    Abstract base class for all task modules.

    A module encapsulates:
    1. Parameters (pydantic schema)
    2. The facts it needs about current host state
    3. The minimal operation that converges current state to desired state
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Module name used in plans (e.g. 'apt')."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description."""

    @property
    @abstractmethod
    def params_cls(self) -> Type[BaseModuleParams]:
        """The pydantic model validating this module's parameters."""

    def parse_params(self, raw: Mapping[str, Any]) -> BaseModuleParams:
        return self.params_cls(**raw)

    def fact_keys(self, params: Any) -> List[FactKey]:
        """Facts to gather before ``apply``. Defaults to none."""
        return []

    @abstractmethod
    def apply(
        self,
        ctx: ModuleContext,
        params: Any,
        current_state: Mapping[FactKey, Any],
    ) -> ModuleResult:
        """Converge the host; raise ModuleExecutionError on failure."""

"""Run arbitrary commands, optionally guarded by ``creates``/``removes``."""

from __future__ import annotations

import shlex
from typing import Any, List, Mapping, Optional, Type, Union

from pydantic import model_validator

from hc_modules.interface import (
    BaseModuleParams,
    FactKey,
    ModuleContext,
    ModuleResult,
    TaskModule,
    command_failed,
    quote,
)


class CommandParams(BaseModuleParams):
    cmd: Union[str, List[str]]
    chdir: Optional[str] = None
    creates: Optional[str] = None
    removes: Optional[str] = None

    @model_validator(mode="after")
    def validate_cmd(self) -> "CommandParams":
        if not self.cmd:
            raise ValueError("cmd must not be empty")
        return self


class CommandModule(TaskModule):
    """Run a command without a shell; arguments are re-quoted."""

    @property
    def name(self) -> str:
        return "command"

    @property
    def description(self) -> str:
        return "Execute a command (no shell operators)"

    @property
    def params_cls(self) -> Type[BaseModuleParams]:
        return CommandParams

    def fact_keys(self, params: CommandParams) -> List[FactKey]:
        keys = []
        if params.creates:
            keys.append(FactKey("file", params.creates))
        if params.removes:
            keys.append(FactKey("file", params.removes))
        return keys

    def build_command(self, params: CommandParams) -> str:
        argv = params.cmd if isinstance(params.cmd, list) else shlex.split(params.cmd)
        return shlex.join(argv)

    def apply(
        self,
        ctx: ModuleContext,
        params: CommandParams,
        current_state: Mapping[FactKey, Any],
    ) -> ModuleResult:
        if params.creates and _exists(current_state, params.creates):
            return ModuleResult(changed=False, msg=f"skipped, since {params.creates} exists")
        if params.removes and not _exists(current_state, params.removes):
            return ModuleResult(
                changed=False, msg=f"skipped, since {params.removes} does not exist"
            )
        command = self.build_command(params)
        if params.chdir:
            command = f"cd {quote(params.chdir)} && {command}"
        result = ctx.run(command, check=False)
        if not result.ok:
            raise command_failed(command, result)
        return ModuleResult(
            changed=True,
            data={
                "rc": result.rc,
                "stdout": result.stdout.rstrip("\n"),
                "stderr": result.stderr.rstrip("\n"),
            },
        )


class ShellModule(CommandModule):
    """Run a command line through ``sh`` (pipes, redirects and ``&`` allowed)."""

    @property
    def name(self) -> str:
        return "shell"

    @property
    def description(self) -> str:
        return "Execute a command line through the remote shell"

    def build_command(self, params: CommandParams) -> str:
        if isinstance(params.cmd, list):
            return shlex.join(params.cmd)
        return params.cmd


def _exists(current_state: Mapping[FactKey, Any], path: str) -> bool:
    fact = current_state.get(FactKey("file", path)) or {}
    return bool(fact.get("exists"))

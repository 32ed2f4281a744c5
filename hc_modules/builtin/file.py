"""Manage files and directories: existence, mode and ownership."""

from __future__ import annotations

from typing import Any, List, Literal, Mapping, Type

from hc_common.errors import ModuleExecutionError
from hc_modules.builtin._attrs import FileAttributes, attribute_commands
from hc_modules.interface import (
    BaseModuleParams,
    FactKey,
    ModuleContext,
    ModuleResult,
    TaskModule,
    join_commands,
    quote,
)


class FileParams(BaseModuleParams, FileAttributes):
    path: str
    state: Literal["file", "directory", "touch", "absent"] = "file"


class FileModule(TaskModule):
    """Converge one path.

    ``touch`` only creates a missing file; existing files keep their
    timestamps so a second run reports no change.
    """

    @property
    def name(self) -> str:
        return "file"

    @property
    def description(self) -> str:
        return "Ensure a file or directory exists with given attributes, or is absent"

    @property
    def params_cls(self) -> Type[BaseModuleParams]:
        return FileParams

    def fact_keys(self, params: FileParams) -> List[FactKey]:
        return [FactKey("file", params.path)]

    def apply(
        self,
        ctx: ModuleContext,
        params: FileParams,
        current_state: Mapping[FactKey, Any],
    ) -> ModuleResult:
        fact = current_state.get(FactKey("file", params.path)) or {}
        exists = bool(fact.get("exists"))
        path = quote(params.path)

        if params.state == "absent":
            if not exists:
                return ModuleResult(changed=False, data={"state": "absent"})
            ctx.run(f"rm -rf -- {path}")
            return ModuleResult(changed=True, msg=f"removed {params.path}", data={"state": "absent"})

        commands: List[str] = []
        if params.state == "directory":
            if exists and fact.get("type") != "directory":
                raise ModuleExecutionError(
                    f"{params.path} exists and is not a directory",
                    context={"path": params.path, "type": fact.get("type")},
                )
            if not exists:
                commands.append(f"mkdir -p -- {path}")
        elif params.state == "touch":
            if not exists:
                commands.append(f"touch -- {path}")
        elif not exists:
            raise ModuleExecutionError(
                f"file {params.path} does not exist",
                context={"path": params.path},
            )

        commands.extend(
            attribute_commands(
                params.path, fact if exists else None, params.mode, params.owner, params.group
            )
        )
        if not commands:
            return ModuleResult(changed=False, data={"state": params.state})
        ctx.run(join_commands(commands))
        return ModuleResult(
            changed=True,
            msg="created" if not exists else "attributes updated",
            data={"state": params.state},
        )

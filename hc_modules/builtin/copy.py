"""Write file content from the plan, the control machine, or another remote path."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any, List, Mapping, Optional, Type

from pydantic import model_validator

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


class CopyParams(BaseModuleParams, FileAttributes):
    dest: str
    content: Optional[str] = None
    src: Optional[str] = None
    remote_src: bool = False

    @model_validator(mode="after")
    def validate_source(self) -> "CopyParams":
        if (self.content is None) == (self.src is None):
            raise ValueError("exactly one of 'content' or 'src' is required")
        if self.remote_src and self.src is None:
            raise ValueError("'remote_src' requires 'src'")
        return self


class CopyModule(TaskModule):
    """Compare sha256 checksums and only rewrite ``dest`` when they differ."""

    @property
    def name(self) -> str:
        return "copy"

    @property
    def description(self) -> str:
        return "Copy content or a file to a remote path"

    @property
    def params_cls(self) -> Type[BaseModuleParams]:
        return CopyParams

    def fact_keys(self, params: CopyParams) -> List[FactKey]:
        keys = [FactKey("checksum", params.dest), FactKey("file", params.dest)]
        if params.remote_src and params.src:
            keys.append(FactKey("checksum", params.src))
        return keys

    def apply(
        self,
        ctx: ModuleContext,
        params: CopyParams,
        current_state: Mapping[FactKey, Any],
    ) -> ModuleResult:
        current_checksum = current_state.get(FactKey("checksum", params.dest))
        fact = current_state.get(FactKey("file", params.dest)) or {}
        if fact.get("type") == "directory":
            raise ModuleExecutionError(
                f"destination {params.dest} is a directory",
                context={"dest": params.dest},
            )

        if params.remote_src:
            desired_checksum = current_state.get(FactKey("checksum", params.src))
            if desired_checksum is None:
                raise ModuleExecutionError(
                    f"remote source {params.src} not found",
                    context={"src": params.src},
                )
            if desired_checksum != current_checksum:
                commands = [f"cp -- {quote(params.src)} {quote(params.dest)}"]
                commands.extend(
                    attribute_commands(params.dest, None, params.mode, params.owner, params.group)
                )
                ctx.run(join_commands(commands))
                return _written(params, desired_checksum)
        else:
            data = self._local_bytes(params)
            desired_checksum = hashlib.sha256(data).hexdigest()
            if desired_checksum != current_checksum:
                ctx.put_file(
                    data,
                    params.dest,
                    mode=params.mode,
                    owner=params.owner,
                    group=params.group,
                )
                return _written(params, desired_checksum)

        commands = attribute_commands(
            params.dest, fact, params.mode, params.owner, params.group
        )
        if not commands:
            return ModuleResult(changed=False, data={"checksum": desired_checksum})
        ctx.run(join_commands(commands))
        return ModuleResult(
            changed=True, msg="attributes updated", data={"checksum": desired_checksum}
        )

    @staticmethod
    def _local_bytes(params: CopyParams) -> bytes:
        if params.content is not None:
            return params.content.encode("utf-8")
        try:
            return Path(params.src).expanduser().read_bytes()
        except OSError as exc:
            raise ModuleExecutionError(
                f"cannot read local source {params.src}: {exc}",
                context={"src": params.src},
                cause=exc,
            ) from exc


def _written(params: CopyParams, checksum: str) -> ModuleResult:
    return ModuleResult(
        changed=True, msg=f"wrote {params.dest}", data={"checksum": checksum}
    )

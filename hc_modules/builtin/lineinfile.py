"""Ensure a single line is present in (or absent from) a text file."""

from __future__ import annotations

import re
from typing import Any, List, Literal, Mapping, Optional, Type

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


class LineInFileParams(BaseModuleParams, FileAttributes):
    path: str
    line: Optional[str] = None
    regexp: Optional[str] = None
    state: Literal["present", "absent"] = "present"
    create: bool = False
    validate_cmd: Optional[str] = None

    model_config = {
        "extra": "forbid",
        "populate_by_name": True,
    }

    @model_validator(mode="before")
    @classmethod
    def _rename_validate(cls, data: Any) -> Any:
        # `validate` is a BaseModel attribute; stored as validate_cmd.
        if isinstance(data, dict) and "validate" in data:
            data = dict(data)
            data["validate_cmd"] = data.pop("validate")
        return data

    @model_validator(mode="after")
    def validate_line(self) -> "LineInFileParams":
        if self.state == "present" and self.line is None:
            raise ValueError("'line' is required when state=present")
        if self.state == "absent" and self.line is None and self.regexp is None:
            raise ValueError("one of 'line' or 'regexp' is required when state=absent")
        if self.validate_cmd is not None and "%s" not in self.validate_cmd:
            raise ValueError("'validate' must contain %s")
        if self.regexp is not None:
            re.compile(self.regexp)
        return self


def edit_lines(
    lines: List[str],
    *,
    line: Optional[str],
    regexp: Optional[str],
    state: str,
) -> List[str]:
    """Return the edited line list; the input list is left untouched.

    With ``regexp`` the last matching line is replaced; without a match the
    line is appended unless an identical line already exists.

    >>> edit_lines(['a=1', 'b=2'], line='b=3', regexp='^b=', state='present')
    ['a=1', 'b=3']
    >>> edit_lines(['a=1'], line='b=3', regexp='^b=', state='present')
    ['a=1', 'b=3']
    >>> edit_lines(['a=1', 'b=2'], line=None, regexp='^a=', state='absent')
    ['b=2']
    """
    pattern = re.compile(regexp) if regexp is not None else None
    if state == "absent":
        if pattern is not None:
            return [item for item in lines if not pattern.search(item)]
        return [item for item in lines if item != line]

    result = list(lines)
    if pattern is not None:
        matches = [index for index, item in enumerate(result) if pattern.search(item)]
        if matches:
            result[matches[-1]] = line
            return result
    if line not in result:
        result.append(line)
    return result


class LineInFileModule(TaskModule):
    """Edit the file content in memory and write it back only if it changed."""

    @property
    def name(self) -> str:
        return "lineinfile"

    @property
    def description(self) -> str:
        return "Manage a single line in a text file"

    @property
    def params_cls(self) -> Type[BaseModuleParams]:
        return LineInFileParams

    def fact_keys(self, params: LineInFileParams) -> List[FactKey]:
        return [FactKey("content", params.path), FactKey("file", params.path)]

    def apply(
        self,
        ctx: ModuleContext,
        params: LineInFileParams,
        current_state: Mapping[FactKey, Any],
    ) -> ModuleResult:
        content = current_state.get(FactKey("content", params.path))
        fact = current_state.get(FactKey("file", params.path)) or {}
        if content is None:
            if params.state == "absent":
                return ModuleResult(changed=False, msg="file does not exist")
            if not params.create:
                raise ModuleExecutionError(
                    f"file {params.path} does not exist",
                    context={"path": params.path},
                )
            content = ""

        lines = content.splitlines()
        edited = edit_lines(
            lines, line=params.line, regexp=params.regexp, state=params.state
        )
        if edited == lines:
            commands = attribute_commands(
                params.path, fact, params.mode, params.owner, params.group
            )
            if not commands:
                return ModuleResult(changed=False)
            ctx.run(join_commands(commands))
            return ModuleResult(changed=True, msg="attributes updated")

        data = ("\n".join(edited) + "\n").encode("utf-8") if edited else b""
        mode = params.mode or fact.get("mode")
        owner = params.owner or fact.get("owner")
        group = params.group or fact.get("group")
        if params.validate_cmd:
            self._write_validated(ctx, params, data, mode, owner, group)
        else:
            ctx.put_file(data, params.path, mode=mode, owner=owner, group=group)
        msg = "line added" if params.state == "present" else "line removed"
        return ModuleResult(changed=True, msg=msg)

    @staticmethod
    def _write_validated(
        ctx: ModuleContext,
        params: LineInFileParams,
        data: bytes,
        mode: Optional[str],
        owner: Optional[str],
        group: Optional[str],
    ) -> None:
        staged = f"{params.path}.hc-validate"
        ctx.put_file(data, staged, mode=mode, owner=owner, group=group)
        check = ctx.run(params.validate_cmd.replace("%s", quote(staged)), check=False)
        if not check.ok:
            ctx.run(f"rm -f -- {quote(staged)}", check=False)
            raise ModuleExecutionError(
                f"validation failed: {check.stderr.strip() or check.stdout.strip()}",
                context={"path": params.path, "validate": params.validate_cmd, "rc": check.rc},
            )
        ctx.run(f"mv -f -- {quote(staged)} {quote(params.path)}")

"""Local group management."""

from __future__ import annotations

from typing import Any, List, Literal, Mapping, Optional, Type

from hc_modules.interface import (
    BaseModuleParams,
    FactKey,
    ModuleContext,
    ModuleResult,
    TaskModule,
    quote,
)


class GroupParams(BaseModuleParams):
    name: str
    state: Literal["present", "absent"] = "present"
    gid: Optional[int] = None
    system: bool = False


class GroupModule(TaskModule):
    @property
    def name(self) -> str:
        return "group"

    @property
    def description(self) -> str:
        return "Ensure a group exists or is absent"

    @property
    def params_cls(self) -> Type[BaseModuleParams]:
        return GroupParams

    def fact_keys(self, params: GroupParams) -> List[FactKey]:
        return [FactKey("group", params.name)]

    def apply(
        self,
        ctx: ModuleContext,
        params: GroupParams,
        current_state: Mapping[FactKey, Any],
    ) -> ModuleResult:
        fact = current_state.get(FactKey("group", params.name)) or {}
        exists = bool(fact.get("exists"))
        name = quote(params.name)

        if params.state == "absent":
            if not exists:
                return ModuleResult(changed=False)
            ctx.run(f"groupdel {name}")
            return ModuleResult(changed=True, msg=f"removed group {params.name}")

        if not exists:
            flags = []
            if params.gid is not None:
                flags.append(f"-g {params.gid}")
            if params.system:
                flags.append("-r")
            ctx.run(" ".join(["groupadd", *flags, name]))
            return ModuleResult(changed=True, msg=f"created group {params.name}")

        if params.gid is not None and fact.get("gid") != params.gid:
            ctx.run(f"groupmod -g {params.gid} {name}")
            return ModuleResult(changed=True, msg=f"changed gid of {params.name}")
        return ModuleResult(changed=False)

"""Debian/Ubuntu package management through apt-get."""

from __future__ import annotations

from typing import Any, List, Literal, Mapping, Optional, Tuple, Type, Union

from pydantic import field_validator

from hc_modules.interface import (
    BaseModuleParams,
    FactKey,
    ModuleContext,
    ModuleResult,
    TaskModule,
    quote,
)

APT_ENV = "DEBIAN_FRONTEND=noninteractive"


class AptParams(BaseModuleParams):
    name: List[str] = []
    state: Literal["present", "absent"] = "present"
    update_cache: bool = False

    @field_validator("name", mode="before")
    @classmethod
    def _as_list(cls, value: Union[str, List[str], None]) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return list(value)


def split_pin(spec: str) -> Tuple[str, Optional[str]]:
    """Split ``nginx=1.26.0-1~jammy`` into name and version."""
    if "=" in spec:
        name, version = spec.split("=", 1)
        return name, version
    return spec, None


class AptModule(TaskModule):
    """Install or remove packages; a pinned version is compared exactly."""

    @property
    def name(self) -> str:
        return "apt"

    @property
    def description(self) -> str:
        return "Manage apt packages"

    @property
    def params_cls(self) -> Type[BaseModuleParams]:
        return AptParams

    def fact_keys(self, params: AptParams) -> List[FactKey]:
        return [FactKey("package", split_pin(spec)[0]) for spec in params.name]

    def apply(
        self,
        ctx: ModuleContext,
        params: AptParams,
        current_state: Mapping[FactKey, Any],
    ) -> ModuleResult:
        if params.update_cache:
            ctx.run(f"{APT_ENV} apt-get update -q")

        pending: List[str] = []
        for spec in params.name:
            name, version = split_pin(spec)
            fact = current_state.get(FactKey("package", name)) or {}
            installed = bool(fact.get("installed"))
            if params.state == "present":
                if not installed or (version and fact.get("version") != version):
                    pending.append(spec)
            elif installed:
                pending.append(name)

        if not pending:
            return ModuleResult(
                changed=False,
                msg="cache updated" if params.update_cache else "",
                data={"cache_updated": params.update_cache},
            )

        packages = " ".join(quote(spec) for spec in pending)
        if params.state == "present":
            ctx.run(f"{APT_ENV} apt-get install -y -q {packages}")
            verb = "installed"
        else:
            ctx.run(f"{APT_ENV} apt-get remove -y -q {packages}")
            verb = "removed"
        return ModuleResult(
            changed=True,
            msg=f"{verb} {', '.join(pending)}",
            data={"packages": pending, "cache_updated": params.update_cache},
        )

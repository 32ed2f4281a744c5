"""Local user account management."""

from __future__ import annotations

from typing import Any, List, Literal, Mapping, Optional, Type, Union

from pydantic import field_validator

from hc_modules.interface import (
    BaseModuleParams,
    FactKey,
    ModuleContext,
    ModuleResult,
    TaskModule,
    quote,
)


class UserParams(BaseModuleParams):
    name: str
    state: Literal["present", "absent"] = "present"
    groups: Optional[List[str]] = None
    append: bool = False
    shell: Optional[str] = None
    home: Optional[str] = None
    password: Optional[str] = None
    create_home: bool = True
    system: bool = False
    remove: bool = False

    @field_validator("groups", mode="before")
    @classmethod
    def _as_list(cls, value: Union[str, List[str], None]) -> Optional[List[str]]:
        if value is None:
            return None
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return list(value)


class UserModule(TaskModule):
    """Create, update or remove a user.

    The password hash is only set when the account is created; hashes with
    random salts would otherwise never compare equal.
    """

    @property
    def name(self) -> str:
        return "user"

    @property
    def description(self) -> str:
        return "Ensure a user account exists with the given attributes"

    @property
    def params_cls(self) -> Type[BaseModuleParams]:
        return UserParams

    def fact_keys(self, params: UserParams) -> List[FactKey]:
        return [FactKey("user", params.name)]

    def apply(
        self,
        ctx: ModuleContext,
        params: UserParams,
        current_state: Mapping[FactKey, Any],
    ) -> ModuleResult:
        fact = current_state.get(FactKey("user", params.name)) or {}
        exists = bool(fact.get("exists"))
        name = quote(params.name)

        if params.state == "absent":
            if not exists:
                return ModuleResult(changed=False)
            ctx.run(f"userdel {'-r ' if params.remove else ''}{name}")
            return ModuleResult(changed=True, msg=f"removed user {params.name}")

        if not exists:
            ctx.run(" ".join(["useradd", *self._create_flags(params), name]))
            return ModuleResult(changed=True, msg=f"created user {params.name}")

        flags = self._modify_flags(params, fact)
        if not flags:
            return ModuleResult(changed=False)
        ctx.run(" ".join(["usermod", *flags, name]))
        return ModuleResult(changed=True, msg=f"updated user {params.name}")

    @staticmethod
    def _create_flags(params: UserParams) -> List[str]:
        flags: List[str] = []
        if params.create_home:
            flags.append("-m")
        if params.system:
            flags.append("-r")
        if params.shell:
            flags.append(f"-s {quote(params.shell)}")
        if params.home:
            flags.append(f"-d {quote(params.home)}")
        if params.groups:
            flags.append(f"-G {quote(','.join(params.groups))}")
        if params.password:
            flags.append(f"-p {quote(params.password)}")
        return flags

    @staticmethod
    def _modify_flags(params: UserParams, fact: Mapping[str, Any]) -> List[str]:
        flags: List[str] = []
        if params.shell and fact.get("shell") != params.shell:
            flags.append(f"-s {quote(params.shell)}")
        if params.home and fact.get("home") != params.home:
            flags.append(f"-d {quote(params.home)}")
        if params.groups is not None:
            # the fact lists supplementary groups only
            current = set(fact.get("groups") or [])
            desired = set(params.groups) - {fact.get("primary_group")}
            if params.append:
                missing = sorted(desired - current)
                if missing:
                    flags.append(f"-a -G {quote(','.join(missing))}")
            elif current != desired:
                flags.append(f"-G {quote(','.join(sorted(desired)))}")
        return flags

"""Python package management with pip, optionally inside a virtualenv."""

from __future__ import annotations

from typing import Any, List, Literal, Mapping, Optional, Type, Union

from packaging.requirements import Requirement
from packaging.utils import canonicalize_name
from pydantic import field_validator, model_validator

from hc_modules.interface import (
    BaseModuleParams,
    FactKey,
    ModuleContext,
    ModuleResult,
    TaskModule,
    join_commands,
    quote,
)


class PipParams(BaseModuleParams):
    name: List[str] = []
    requirements: Optional[str] = None
    virtualenv: Optional[str] = None
    virtualenv_command: str = "python3 -m venv"
    executable: str = "pip3"
    state: Literal["present", "absent"] = "present"
    extra_args: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _as_list(cls, value: Union[str, List[str], None]) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return list(value)

    @field_validator("name")
    @classmethod
    def _valid_requirements(cls, value: List[str]) -> List[str]:
        for spec in value:
            Requirement(spec)
        return value

    @model_validator(mode="after")
    def validate_source(self) -> "PipParams":
        if bool(self.name) == (self.requirements is not None):
            raise ValueError("exactly one of 'name' or 'requirements' is required")
        if self.state == "absent" and self.requirements is not None:
            raise ValueError("state=absent takes 'name', not 'requirements'")
        return self

    @property
    def pip(self) -> str:
        if self.virtualenv:
            return f"{self.virtualenv.rstrip('/')}/bin/pip"
        return self.executable

    @property
    def install_args(self) -> str:
        if self.requirements is not None:
            args = f"-r {quote(self.requirements)}"
        else:
            args = " ".join(quote(spec) for spec in self.name)
        return f"{self.extra_args} {args}" if self.extra_args else args


def pending_target(pip: str, install_args: str) -> str:
    """Fact target for the ``pip_pending`` kind: ``<pip>#<install args>``."""
    return f"{pip}#{install_args}"


class PipModule(TaskModule):
    """Install requirements or named packages, creating the virtualenv first.

    Whether anything is missing is asked of pip itself (a dry-run install), so
    pinned versions, ranges and requirement files are all judged the way pip
    would judge them.
    """

    @property
    def name(self) -> str:
        return "pip"

    @property
    def description(self) -> str:
        return "Manage Python packages with pip"

    @property
    def params_cls(self) -> Type[BaseModuleParams]:
        return PipParams

    def fact_keys(self, params: PipParams) -> List[FactKey]:
        keys: List[FactKey] = []
        if params.virtualenv:
            keys.append(FactKey("file", params.pip))
        if params.state == "present":
            keys.append(FactKey("pip_pending", pending_target(params.pip, params.install_args)))
        else:
            keys.append(FactKey("pip_packages", params.pip))
        return keys

    def apply(
        self,
        ctx: ModuleContext,
        params: PipParams,
        current_state: Mapping[FactKey, Any],
    ) -> ModuleResult:
        venv_missing = False
        if params.virtualenv:
            fact = current_state.get(FactKey("file", params.pip)) or {}
            venv_missing = not fact.get("exists")

        if params.state == "absent":
            return self._remove(ctx, params, current_state, venv_missing)

        pending = current_state.get(
            FactKey("pip_pending", pending_target(params.pip, params.install_args))
        )
        if not venv_missing and pending == []:
            return ModuleResult(changed=False, data={"installed": []})

        commands: List[str] = []
        if venv_missing:
            commands.append(f"{params.virtualenv_command} {quote(params.virtualenv)}")
        commands.append(f"{quote(params.pip)} install {params.install_args}")
        ctx.run(join_commands(commands))
        installed = pending or []
        msg = f"installed {', '.join(installed)}" if installed else "packages installed"
        return ModuleResult(
            changed=True,
            msg=msg,
            data={"installed": installed, "virtualenv_created": venv_missing},
        )

    @staticmethod
    def _remove(
        ctx: ModuleContext,
        params: PipParams,
        current_state: Mapping[FactKey, Any],
        venv_missing: bool,
    ) -> ModuleResult:
        if venv_missing:
            return ModuleResult(changed=False, msg="virtualenv does not exist")
        installed = current_state.get(FactKey("pip_packages", params.pip)) or {}
        names = [Requirement(spec).name for spec in params.name]
        remove = [name for name in names if canonicalize_name(name) in installed]
        if not remove:
            return ModuleResult(changed=False)
        packages = " ".join(quote(name) for name in remove)
        ctx.run(f"{quote(params.pip)} uninstall -y {packages}")
        return ModuleResult(
            changed=True, msg=f"removed {', '.join(remove)}", data={"removed": remove}
        )

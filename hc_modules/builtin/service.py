"""systemd service state management."""

from __future__ import annotations

from typing import Any, List, Literal, Mapping, Optional, Type

from pydantic import model_validator

from hc_modules.interface import (
    BaseModuleParams,
    FactKey,
    ModuleContext,
    ModuleResult,
    TaskModule,
    join_commands,
    quote,
)


class ServiceParams(BaseModuleParams):
    name: str
    state: Optional[Literal["started", "stopped", "restarted", "reloaded"]] = None
    enabled: Optional[bool] = None

    @model_validator(mode="after")
    def validate_action(self) -> "ServiceParams":
        if self.state is None and self.enabled is None:
            raise ValueError("one of 'state' or 'enabled' is required")
        return self


class ServiceModule(TaskModule):
    """Start/stop/enable a unit; ``restarted`` and ``reloaded`` always act."""

    @property
    def name(self) -> str:
        return "service"

    @property
    def description(self) -> str:
        return "Manage systemd services"

    @property
    def params_cls(self) -> Type[BaseModuleParams]:
        return ServiceParams

    def fact_keys(self, params: ServiceParams) -> List[FactKey]:
        return [FactKey("service", params.name)]

    def apply(
        self,
        ctx: ModuleContext,
        params: ServiceParams,
        current_state: Mapping[FactKey, Any],
    ) -> ModuleResult:
        fact = current_state.get(FactKey("service", params.name)) or {}
        active = fact.get("active") == "active"
        enabled = fact.get("enabled") == "enabled"
        unit = quote(params.name)

        commands: List[str] = []
        if params.enabled is True and not enabled:
            commands.append(f"systemctl enable {unit}")
        elif params.enabled is False and enabled:
            commands.append(f"systemctl disable {unit}")

        if params.state == "started" and not active:
            commands.append(f"systemctl start {unit}")
        elif params.state == "stopped" and active:
            commands.append(f"systemctl stop {unit}")
        elif params.state == "restarted":
            commands.append(f"systemctl restart {unit}")
        elif params.state == "reloaded":
            commands.append(f"systemctl reload {unit}")

        if not commands:
            return ModuleResult(changed=False, data={"state": fact.get("active")})
        ctx.run(join_commands(commands))
        return ModuleResult(
            changed=True,
            msg="; ".join(command.split(" ", 2)[1] for command in commands),
            data={"state": params.state or fact.get("active")},
        )

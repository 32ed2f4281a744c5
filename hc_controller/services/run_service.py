"""Application-facing helpers that wire a plan file to a run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from hc_common.errors import ConfigurationError
from hc_common.models.hosts import RemoteHostConfig
from hc_common.transport import LocalTransport, SshTransport, Transport
from hc_controller.engine.coordinator import RunCoordinator
from hc_controller.engine.executor import ModuleExecutor
from hc_controller.engine.plan_builder import TaskGraphBuilder
from hc_controller.models.config import EngineConfig
from hc_controller.models.outcome import RunReport
from hc_controller.models.plan import ExecutionPlan, PlaybookSpec
from hc_controller.services.plan_loader import load_inventory, load_playbook
from hc_controller.stop_token import StopToken
from hc_modules.registry import ModuleRegistry, create_registry

logger = logging.getLogger(__name__)

CONNECTIONS = ("ssh", "local")


@dataclass
class RunRequest:
    """Everything the CLI collects for one `hc run`."""

    plan_path: Path
    hosts: List[str] = field(default_factory=list)
    inventory_path: Optional[Path] = None
    limit: Optional[str] = None
    connection: str = "ssh"
    config: EngineConfig = field(default_factory=EngineConfig)
    json_out: Optional[Path] = None


class RunService:
    """Load, validate and execute plans."""

    def __init__(
        self,
        registry: Optional[ModuleRegistry] = None,
        transport: Optional[Transport] = None,
    ) -> None:
        self.registry = registry or create_registry()
        self._transport = transport

    def load_plan(self, plan_path: Path) -> Tuple[PlaybookSpec, ExecutionPlan]:
        """Parse and build a plan; raises before any host is contacted."""
        playbook = load_playbook(plan_path)
        plan = TaskGraphBuilder(self.registry).build_playbook(playbook)
        return playbook, plan

    @staticmethod
    def resolve_hosts(
        playbook: PlaybookSpec,
        *,
        hosts: Sequence[str] = (),
        inventory_path: Optional[Path] = None,
        limit: Optional[str] = None,
    ) -> List[RemoteHostConfig]:
        """Explicit ``--host`` addresses win; otherwise select from the inventory."""
        if hosts and inventory_path:
            raise ConfigurationError("Use either --host or --inventory, not both")
        if hosts:
            try:
                return [RemoteHostConfig.from_address(address) for address in hosts]
            except ValueError as exc:
                raise ConfigurationError(
                    f"Invalid --host value: {exc}", context={"hosts": list(hosts)}, cause=exc
                ) from exc
        if inventory_path is None:
            raise ConfigurationError("No target hosts: pass --host or --inventory")
        inventory = load_inventory(inventory_path)
        selected = inventory.select(limit or playbook.hosts)
        if not selected:
            raise ConfigurationError(
                f"No inventory host matches '{limit or playbook.hosts}'",
                context={"inventory": inventory_path},
            )
        return selected

    def transport_for(self, connection: str, config: EngineConfig) -> Transport:
        if self._transport is not None:
            return self._transport
        if connection == "local":
            return LocalTransport()
        if connection == "ssh":
            return SshTransport(connect_timeout=config.connect_timeout_seconds)
        raise ConfigurationError(
            f"Unknown connection type '{connection}'", context={"choices": CONNECTIONS}
        )

    def execute(
        self, request: RunRequest, stop_token: Optional[StopToken] = None
    ) -> RunReport:
        playbook, plan = self.load_plan(request.plan_path)
        hosts = self.resolve_hosts(
            playbook,
            hosts=request.hosts,
            inventory_path=request.inventory_path,
            limit=request.limit,
        )
        config = request.config
        executor = ModuleExecutor(
            self.registry,
            self.transport_for(request.connection, config),
            default_timeout=config.task_timeout_seconds,
            plan_become=plan.become,
        )
        if stop_token is None and config.stop_file is not None:
            stop_token = StopToken(stop_file=config.stop_file, enable_signals=False)
        report = RunCoordinator(executor, config, stop_token).run(plan, hosts)
        if request.json_out is not None:
            report.save(request.json_out)
            logger.info("Report written to %s", request.json_out)
        return report

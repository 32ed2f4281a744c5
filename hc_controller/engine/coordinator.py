"""Fan a plan out over many hosts with bounded parallelism."""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import structlog

from hc_common.errors import ConfigurationError, ModuleExecutionError, error_to_payload
from hc_common.models.hosts import RemoteHostConfig
from hc_controller.engine.convergence import ConvergenceEngine
from hc_controller.engine.executor import ModuleExecutor
from hc_controller.models.config import EngineConfig
from hc_controller.models.outcome import HostResult, RunReport
from hc_controller.models.plan import ExecutionPlan
from hc_controller.models.state import HostState
from hc_controller.stop_token import StopToken

logger = logging.getLogger(__name__)


def generate_run_id() -> str:
    """Timestamp-based run identifier with a short random suffix."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"run-{stamp}-{uuid.uuid4().hex[:6]}"


class RunCoordinator:
    """Runs one ConvergenceEngine per host and aggregates a RunReport.

    At most ``config.forks`` hosts converge at once. Hosts share nothing but
    the read-only plan, the stateless executor and the stop token.
    """

    def __init__(
        self,
        executor: ModuleExecutor,
        config: Optional[EngineConfig] = None,
        stop_token: Optional[StopToken] = None,
    ) -> None:
        self.executor = executor
        self.config = config or EngineConfig()
        self.stop_token = stop_token

    def run(
        self,
        plan: ExecutionPlan,
        hosts: Sequence[RemoteHostConfig],
        *,
        run_id: Optional[str] = None,
    ) -> RunReport:
        if not hosts:
            raise ConfigurationError("At least one host is required.")
        names = [host.name for host in hosts]
        if len(set(names)) != len(names):
            raise ConfigurationError("Host names must be unique within a run.")

        run_id = run_id or generate_run_id()
        started_at = datetime.now(timezone.utc)
        workers = min(self.config.forks, len(hosts))
        logger.info(
            "Starting %s: plan '%s' on %d host(s), forks=%d",
            run_id,
            plan.name or "<unnamed>",
            len(hosts),
            workers,
        )

        results: Dict[str, HostResult] = {}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hc-host") as pool:
            futures = {
                host.name: pool.submit(self._converge_host, plan, host, run_id)
                for host in hosts
            }
            for name, future in futures.items():
                results[name] = future.result()

        report = RunReport(
            run_id=run_id,
            hosts=tuple(results[name] for name in names),
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            plan_name=plan.name,
        )
        self._log_summary(report)
        return report

    def _converge_host(
        self, plan: ExecutionPlan, host: RemoteHostConfig, run_id: str
    ) -> HostResult:
        with structlog.contextvars.bound_contextvars(run_id=run_id):
            engine = ConvergenceEngine(
                plan, host, self.executor, stop_token=self.stop_token
            )
            try:
                return engine.run()
            except Exception as exc:
                logger.exception("Convergence of %s aborted unexpectedly", host.name)
                error = ModuleExecutionError(
                    f"Convergence aborted: {exc}",
                    context={"host": host.name},
                    cause=exc,
                )
                partial = engine.result()
                return HostResult(
                    host=host.name,
                    state=HostState.FAILED,
                    records=partial.records,
                    error=error_to_payload(error),
                )

    @staticmethod
    def _log_summary(report: RunReport) -> None:
        for result in report.hosts:
            counts = result.counts()
            logger.info(
                "%s: %s ok=%d changed=%d failed=%d skipped=%d",
                result.host,
                result.state.value,
                counts["ok"],
                counts["changed"],
                counts["failed"],
                counts["skipped"],
            )
        failed: List[str] = list(report.failed_hosts)
        if failed:
            logger.warning("Run %s finished with failed hosts: %s", report.run_id, ", ".join(failed))
        else:
            logger.info("Run %s finished successfully", report.run_id)

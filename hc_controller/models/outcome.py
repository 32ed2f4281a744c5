"""Per-task outcomes, per-host results and the aggregate run report."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from hc_controller.models.state import HostState

NO_LOG_MESSAGE = "output hidden because no_log is set"


class Outcome(str, Enum):
    """Result of applying one task on one host."""

    OK = "ok"
    CHANGED = "changed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TaskRecord:
    """Outcome of one task invocation on one host."""

    task_id: str
    name: str
    module: str
    outcome: Outcome
    detail: str = ""
    error: Optional[Dict[str, Any]] = None
    data: Mapping[str, Any] = field(default_factory=dict)
    duration_seconds: float = 0.0
    ignored: bool = False
    handler: bool = False

    @property
    def changed(self) -> bool:
        return self.outcome is Outcome.CHANGED

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILED

    def redacted(self) -> "TaskRecord":
        """Copy with module output and error context removed."""
        error = None
        if self.error is not None:
            error = {"error_type": self.error.get("error_type"), "error": NO_LOG_MESSAGE}
        return replace(self, detail=NO_LOG_MESSAGE, data={}, error=error)

    def register_payload(self) -> Dict[str, Any]:
        """Mapping bound by ``register``; failures expose the error context."""
        payload: Dict[str, Any] = {}
        if self.error is not None:
            payload.update(self.error.get("error_context") or {})
            payload["msg"] = self.error.get("error", "")
        payload.update(self.data)
        payload.setdefault("msg", self.detail)
        payload.update(
            {
                "outcome": self.outcome.value,
                "changed": self.changed,
                "failed": self.failed,
                "skipped": self.outcome is Outcome.SKIPPED,
            }
        )
        return payload

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        data["data"] = dict(self.data)
        return data


@dataclass(frozen=True)
class HostResult:
    """Ordered task records plus the final state for one host."""

    host: str
    state: HostState
    records: Tuple[TaskRecord, ...] = ()
    failed_task: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state is HostState.SUCCEEDED

    @property
    def applied(self) -> Tuple[TaskRecord, ...]:
        """Records that changed the host, in execution order."""
        return tuple(record for record in self.records if record.changed)

    def counts(self) -> Dict[str, int]:
        totals = {outcome.value: 0 for outcome in Outcome}
        for record in self.records:
            totals[record.outcome.value] += 1
        return totals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "state": self.state.value,
            "failed_task": self.failed_task,
            "error": self.error,
            "cancelled": self.cancelled,
            "counts": self.counts(),
            "records": [record.to_dict() for record in self.records],
        }


@dataclass(frozen=True)
class RunReport:
    """Aggregate of all host results; immutable once produced."""

    run_id: str
    hosts: Tuple[HostResult, ...]
    started_at: datetime
    finished_at: datetime
    plan_name: Optional[str] = None

    @property
    def success(self) -> bool:
        return all(result.succeeded for result in self.hosts)

    @property
    def failed_hosts(self) -> Tuple[str, ...]:
        return tuple(result.host for result in self.hosts if not result.succeeded)

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 2

    def host(self, name: str) -> HostResult:
        for result in self.hosts:
            if result.host == name:
                return result
        raise KeyError(f"No result for host '{name}'")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "plan": self.plan_name,
            "success": self.success,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "hosts": [result.to_dict() for result in self.hosts],
        }

    def save(self, path: Path) -> None:
        """Persist the report as JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2, default=str))

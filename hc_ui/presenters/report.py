"""Presenters for run reports and plans."""

from __future__ import annotations

from typing import List

from rich.markup import escape

from hc_controller.api import ExecutionPlan, HostResult, HostState, RunReport
from hc_ui.models import TableModel

_STATE_STYLE = {
    HostState.SUCCEEDED: "[green]succeeded[/green]",
    HostState.FAILED: "[red]failed[/red]",
}

_OUTCOME_STYLE = {
    "ok": "[green]ok[/green]",
    "changed": "[yellow]changed[/yellow]",
    "failed": "[red]failed[/red]",
    "skipped": "[cyan]skipped[/cyan]",
}


def _host_state(result: HostResult) -> str:
    if result.cancelled:
        return "[magenta]cancelled[/magenta]"
    return _STATE_STYLE.get(result.state, result.state.value)


def build_summary_table(report: RunReport) -> TableModel:
    """One row per host, in inventory order."""
    rows: List[List[str]] = []
    for result in report.hosts:
        counts = result.counts()
        reason = ""
        if result.error:
            reason = str(result.error.get("error", ""))
        rows.append(
            [
                escape(result.host),
                _host_state(result),
                str(counts["ok"]),
                str(counts["changed"]),
                str(counts["failed"]),
                str(counts["skipped"]),
                escape(result.failed_task or ""),
                escape(reason),
            ]
        )
    return TableModel(
        title=f"Run {report.run_id}",
        columns=["Host", "State", "Ok", "Changed", "Failed", "Skipped", "Failed Task", "Reason"],
        rows=rows,
    )


def build_host_table(result: HostResult) -> TableModel:
    """Task-by-task records of one host."""
    rows = []
    for record in result.records:
        outcome = _OUTCOME_STYLE.get(record.outcome.value, record.outcome.value)
        if record.ignored:
            outcome += " (ignored)"
        rows.append(
            [
                record.task_id,
                escape(record.name),
                record.module,
                outcome,
                f"{record.duration_seconds:.2f}s",
                escape(record.detail),
            ]
        )
    return TableModel(
        title=f"Tasks on {result.host}",
        columns=["#", "Task", "Module", "Outcome", "Time", "Detail"],
        rows=rows,
    )


def build_plan_table(plan: ExecutionPlan) -> TableModel:
    rows = [
        [
            task.task_id,
            escape(task.display_name),
            task.module,
            "" if task.when is None else escape(str(task.when)),
            ", ".join(task.notify),
        ]
        for task in plan.tasks
    ]
    rows.extend(
        [handler.task_id, escape(handler.display_name), handler.module, "", ""]
        for handler in plan.handlers.values()
    )
    return TableModel(
        title=f"Plan {plan.name or ''}".strip(),
        columns=["#", "Task", "Module", "When", "Notify"],
        rows=rows,
    )

from datetime import datetime, timezone
from io import StringIO

import pytest
from rich.console import Console

from hc_controller.api import HostResult, HostState, Outcome, RunReport, TaskRecord
from hc_controller.engine.plan_builder import build_plan
from hc_controller.models.plan import HandlerSpec, TaskSpec
from hc_ui.api import (
    ConsolePresenter,
    TableModel,
    build_host_table,
    build_modules_table,
    build_plan_table,
    build_summary_table,
)
from tests.helpers.fakes import make_registry

pytestmark = pytest.mark.unit_ui

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _report() -> RunReport:
    ok = HostResult(
        host="web-1",
        state=HostState.SUCCEEDED,
        records=(
            TaskRecord("1", "install", "apt", Outcome.CHANGED, duration_seconds=1.5),
            TaskRecord("2", "sudo check", "command", Outcome.FAILED, detail="rc=1", ignored=True),
        ),
    )
    failed = HostResult(
        host="db-1",
        state=HostState.FAILED,
        records=(TaskRecord("1", "install", "apt", Outcome.FAILED, detail="E: [broken]"),),
        failed_task="install",
        error={"error_type": "ModuleExecutionError", "error": "E: [broken]"},
    )
    cancelled = HostResult(
        host="db-2",
        state=HostState.FAILED,
        cancelled=True,
        error={"error_type": "RunCancelled", "error": "Run cancelled"},
    )
    return RunReport("run-1", (ok, failed, cancelled), NOW, NOW)


def test_summary_table_rows_follow_report_order():
    model = build_summary_table(_report())

    assert model.title == "Run run-1"
    assert model.columns == ["Host", "State", "Ok", "Changed", "Failed", "Skipped", "Failed Task", "Reason"]
    assert [row[0] for row in model.rows] == ["web-1", "db-1", "db-2"]
    assert model.rows[0][1:6] == ["[green]succeeded[/green]", "0", "1", "1", "0"]
    assert model.rows[1][6] == "install"
    assert model.rows[1][7] == "E: \\[broken]"
    assert model.rows[2][1] == "[magenta]cancelled[/magenta]"


def test_host_table_marks_ignored_failures():
    model = build_host_table(_report().hosts[0])

    assert model.columns == ["#", "Task", "Module", "Outcome", "Time", "Detail"]
    assert model.rows[0] == ["1", "install", "apt", "[yellow]changed[/yellow]", "1.50s", ""]
    assert model.rows[1][3] == "[red]failed[/red] (ignored)"


def test_plan_table_lists_tasks_then_handlers():
    plan = build_plan(
        [TaskSpec.model_validate({"name": "cfg", "command": "true", "when": "x", "notify": "reload"})],
        [HandlerSpec.model_validate({"name": "reload", "command": "reload"})],
        registry=make_registry(),
    )
    model = build_plan_table(plan)
    assert model.rows == [
        ["1", "cfg", "command", "x", "reload"],
        ["handler:reload", "reload", "command", "", ""],
    ]


def test_modules_table_lists_parameters():
    model = build_modules_table(make_registry())
    rows = {row[0]: row for row in model.rows}
    assert "apt" in rows and "kv" in rows
    assert rows["kv"][2] == "key, value, fail"


def test_console_presenter_renders_tables_and_messages():
    buffer = StringIO()
    presenter = ConsolePresenter(Console(file=buffer, width=120))

    presenter.table(TableModel(title="Demo", columns=["A"], rows=[["cell"]]))
    presenter.error("bad [value]")

    output = buffer.getvalue()
    assert "Demo" in output
    assert "cell" in output
    assert "ERROR bad [value]" in output

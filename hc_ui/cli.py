"""
Command-line interface for host-converge.

`hc run` converges hosts to a plan, `hc check` validates a plan without
contacting any host and `hc modules` lists the available task modules.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError

from hc_common.errors import HCError
from hc_common.logging import configure_logging
from hc_controller.api import EngineConfig, RunRequest, RunService, StopToken
from hc_controller.services.run_service import CONNECTIONS
from hc_modules.registry import create_registry
from hc_ui.console import ConsolePresenter
from hc_ui.presenters.modules import build_modules_table
from hc_ui.presenters.report import (
    build_host_table,
    build_plan_table,
    build_summary_table,
)

EXIT_USAGE_ERROR = 1

ui = ConsolePresenter()

app = typer.Typer(
    help="Converge remote hosts to a declared plan over SSH.",
    no_args_is_help=True,
)


@app.callback()
def entry(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    log_json: Optional[bool] = typer.Option(
        None, "--log-json/--no-log-json", help="Render log records as JSON."
    ),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file."),
) -> None:
    """Global options shared by every command."""
    configure_logging(
        debug=verbose,
        json=log_json,
        log_file=str(log_file) if log_file else None,
        force=True,
    )


def _fail(message: str) -> None:
    ui.error(message)
    raise typer.Exit(EXIT_USAGE_ERROR)


@app.command("run")
def run(
    plan: Path = typer.Argument(..., help="YAML plan file."),
    host: List[str] = typer.Option(
        None, "--host", "-H", help="Target as [user@]address[:port]; repeatable."
    ),
    inventory: Optional[Path] = typer.Option(
        None, "--inventory", "-i", help="YAML inventory file."
    ),
    limit: Optional[str] = typer.Option(
        None, "--limit", "-l", help="Inventory pattern; defaults to the plan's `hosts`."
    ),
    forks: Optional[int] = typer.Option(
        None, "--forks", "-f", min=1, help="Hosts converged in parallel (HC_FORKS)."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", min=0.001, help="Default per-task timeout in seconds."
    ),
    connection: str = typer.Option(
        "ssh", "--connection", "-c", help=f"Transport: {' or '.join(CONNECTIONS)}."
    ),
    stop_file: Optional[Path] = typer.Option(
        None, "--stop-file", help="Cancel the run when this file appears."
    ),
    json_out: Optional[Path] = typer.Option(
        None, "--json-out", help="Write the run report as JSON."
    ),
    details: bool = typer.Option(
        False, "--details/--summary", help="Show per-task tables for every host."
    ),
) -> None:
    """Converge every selected host to PLAN."""
    try:
        config = EngineConfig.from_env(
            forks=forks, task_timeout_seconds=timeout, stop_file=stop_file
        )
    except ValidationError as exc:
        _fail(f"Invalid engine configuration: {exc.errors()[0]['msg']}")
    request = RunRequest(
        plan_path=plan,
        hosts=list(host or []),
        inventory_path=inventory,
        limit=limit,
        connection=connection,
        config=config,
        json_out=json_out,
    )
    service = RunService()
    try:
        with StopToken(stop_file=config.stop_file) as stop_token:
            report = service.execute(request, stop_token=stop_token)
    except HCError as exc:
        _fail(f"{exc.error_type}: {exc}")

    for result in report.hosts:
        if details or not result.succeeded:
            ui.table(build_host_table(result))
    ui.table(build_summary_table(report))
    if json_out:
        ui.info(f"Report saved to {json_out}")
    if report.success:
        ui.success(f"All {len(report.hosts)} host(s) converged.")
    else:
        ui.warning(f"Failed hosts: {', '.join(report.failed_hosts)}")
    raise typer.Exit(report.exit_code)


@app.command("check")
def check(
    plan: Path = typer.Argument(..., help="YAML plan file."),
    show: bool = typer.Option(False, "--show", help="Print the expanded task list."),
) -> None:
    """Validate PLAN without contacting any host."""
    try:
        _, execution_plan = RunService().load_plan(plan)
    except HCError as exc:
        _fail(f"{exc.error_type}: {exc}")
    if show:
        ui.table(build_plan_table(execution_plan))
    ui.success(
        f"{plan}: {len(execution_plan.tasks)} task(s), "
        f"{len(execution_plan.handlers)} handler(s)"
    )


@app.command("modules")
def list_modules() -> None:
    """List registered task modules, including entry-point plugins."""
    ui.table(build_modules_table(create_registry()))


def main() -> None:
    """Console script entrypoint (Typer app)."""
    app()


if __name__ == "__main__":
    main()

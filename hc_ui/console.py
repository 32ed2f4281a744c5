"""Rich rendering of TableModels and status messages."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from hc_ui.models import TableModel


def build_rich_table(model: TableModel, *, show_lines: bool = False) -> Table:
    table = Table(
        title=model.title,
        show_lines=show_lines,
        box=box.ROUNDED,
        border_style="blue",
        header_style="bold blue",
        title_style="bold blue",
    )
    for column in model.columns:
        table.add_column(column, overflow="fold")
    for row in model.rows:
        table.add_row(*row)
    return table


class ConsolePresenter:
    """Thin wrapper over a rich Console used by every command."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def table(self, model: TableModel, *, show_lines: bool = False) -> None:
        self.console.print(build_rich_table(model, show_lines=show_lines))

    def info(self, message: str) -> None:
        self.console.print(f"[bold]INFO[/bold] {escape(message)}")

    def success(self, message: str) -> None:
        self.console.print(f"[green]OK[/green] {escape(message)}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]WARN[/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]ERROR[/red] {escape(message)}")

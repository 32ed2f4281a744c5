"""Public UI API surface."""

from hc_ui.cli import app, main
from hc_ui.console import ConsolePresenter, build_rich_table
from hc_ui.models import TableModel
from hc_ui.presenters.modules import build_modules_table
from hc_ui.presenters.report import build_host_table, build_plan_table, build_summary_table

__all__ = [
    "ConsolePresenter",
    "TableModel",
    "app",
    "build_host_table",
    "build_modules_table",
    "build_plan_table",
    "build_rich_table",
    "build_summary_table",
    "main",
]

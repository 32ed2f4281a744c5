"""Presenter for the module registry."""

from __future__ import annotations

from hc_modules.registry import ModuleRegistry
from hc_ui.models import TableModel


def build_modules_table(registry: ModuleRegistry) -> TableModel:
    modules = registry.available(load_entrypoints=True)
    rows = [
        [name, module.description, ", ".join(module.params_cls.model_fields)]
        for name, module in sorted(modules.items())
    ]
    return TableModel(
        title="Available Task Modules",
        columns=["Module", "Description", "Parameters"],
        rows=rows,
    )

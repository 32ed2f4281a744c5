"""Public API surface for hc_modules."""

from hc_modules.builtin import builtin_modules
from hc_modules.interface import (
    BaseModuleParams,
    FactKey,
    ModuleContext,
    ModuleResult,
    TaskModule,
)
from hc_modules.registry import ENTRYPOINT_GROUP, ModuleRegistry, create_registry

__all__ = [
    "BaseModuleParams",
    "ENTRYPOINT_GROUP",
    "FactKey",
    "ModuleContext",
    "ModuleRegistry",
    "ModuleResult",
    "TaskModule",
    "builtin_modules",
    "create_registry",
]

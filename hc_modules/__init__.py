"""Task modules for host-converge."""

from hc_modules.api import (  # noqa: F401
    FactKey,
    ModuleContext,
    ModuleRegistry,
    ModuleResult,
    TaskModule,
    create_registry,
)

__all__ = [
    "FactKey",
    "ModuleContext",
    "ModuleRegistry",
    "ModuleResult",
    "TaskModule",
    "create_registry",
]

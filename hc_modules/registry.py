"""
Registry and discovery utilities for task modules.
"""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Any, Dict, Iterable, Optional

from hc_common.errors import PlanValidationError
from hc_modules.interface import TaskModule


logger = logging.getLogger(__name__)
ENTRYPOINT_GROUP = "host_converge.modules"


def _discover_entrypoints() -> Dict[str, importlib.metadata.EntryPoint]:
    """Third-party modules by name, not yet imported; the first name wins."""
    try:
        found = importlib.metadata.entry_points().select(group=ENTRYPOINT_GROUP)
    except Exception as exc:
        logger.warning("Cannot read %s entry points: %s", ENTRYPOINT_GROUP, exc)
        return {}
    pending: Dict[str, importlib.metadata.EntryPoint] = {}
    for entry_point in found:
        if entry_point.name in pending:
            logger.warning(
                "Ignoring duplicate task module %s from %s",
                entry_point.name,
                entry_point.value,
            )
            continue
        pending[entry_point.name] = entry_point
    return pending


class ModuleRegistry:
    """In-memory registry of task modules keyed by name.

    Entry points in the ``host_converge.modules`` group are discovered at
    construction but only imported when their name is first requested.
    Built-in modules shadow entry points of the same name.
    """

    def __init__(
        self,
        modules: Optional[Iterable[Any]] = None,
        *,
        discover: bool = True,
    ):
        self._modules: Dict[str, TaskModule] = {}
        self._pending_entrypoints: Dict[str, importlib.metadata.EntryPoint] = {}
        if modules:
            for module in modules:
                self.register(module)
        if discover:
            self._pending_entrypoints = {
                name: entry_point
                for name, entry_point in _discover_entrypoints().items()
                if name not in self._modules
            }

    def register(self, module: Any) -> None:
        """Register a module instance (a class is instantiated first)."""
        if isinstance(module, type):
            module = module()
        if isinstance(module, TaskModule):
            self._modules[module.name] = module
        elif hasattr(module, "name") and hasattr(module, "apply") and hasattr(module, "params_cls"):
            self._modules[module.name] = module
        else:
            raise TypeError(f"Unknown module type: {type(module)}")

    def get(self, name: str) -> TaskModule:
        """Return the module called ``name``, importing its entry point if needed."""
        if name not in self._modules and name in self._pending_entrypoints:
            self._load_entrypoint(name)
        if name not in self._modules:
            raise PlanValidationError(
                f"Task module '{name}' not found",
                context={"module": name},
            )
        return self._modules[name]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and (
            name in self._modules or name in self._pending_entrypoints
        )

    def available(self, load_entrypoints: bool = False) -> Dict[str, TaskModule]:
        """
        Return registered modules.

        When load_entrypoints is True, pending entry-point modules are resolved
        and registered first.
        """
        if load_entrypoints:
            for name in list(self._pending_entrypoints):
                self._load_entrypoint(name)
        return dict(sorted(self._modules.items()))

    def _load_entrypoint(self, name: str) -> None:
        entry_point = self._pending_entrypoints.pop(name, None)
        if entry_point is None:
            return
        try:
            self.register(entry_point.load())
        except ImportError as exc:
            logger.warning("Skipping task module %s, missing dependency: %s", name, exc)
        except Exception as exc:
            logger.warning("Failed to load task module %s: %s", name, exc)


def create_registry(*, discover: bool = True) -> ModuleRegistry:
    """Registry pre-populated with the built-in modules."""
    from hc_modules.builtin import builtin_modules

    return ModuleRegistry(builtin_modules(), discover=discover)

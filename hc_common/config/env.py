"""Readers for ``HC_*`` environment settings."""

from __future__ import annotations

import logging
import os
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

N = TypeVar("N", int, float)

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def env_flag(name: str) -> bool | None:
    """Read a boolean setting; None when ``name`` is unset or blank."""
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return None
    return raw in _TRUTHY


def env_number(name: str, kind: Callable[[str], N]) -> N | None:
    """Read a numeric setting, ignoring an unset or malformed value."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return kind(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a valid %s", name, raw, kind.__name__)
        return None

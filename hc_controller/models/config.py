"""Engine configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from hc_common.config.env import env_number


class EngineConfig(BaseModel):
    """Tunables for a convergence run."""

    forks: int = Field(default=5, gt=0, description="Maximum hosts converged in parallel")
    task_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Default per-task timeout; None disables it"
    )
    connect_timeout_seconds: int = Field(default=10, gt=0, description="SSH ConnectTimeout")
    stop_file: Optional[Path] = Field(
        default=None, description="Cancel the run when this file appears"
    )

    @classmethod
    def from_env(cls, **overrides: Any) -> "EngineConfig":
        """Build a config from ``HC_*`` environment variables.

        Explicit keyword overrides that are not None win over the environment.
        """
        values: Dict[str, Any] = {}
        forks = env_number("HC_FORKS", int)
        if forks is not None:
            values["forks"] = forks
        timeout = env_number("HC_TASK_TIMEOUT", float)
        if timeout is not None:
            values["task_timeout_seconds"] = timeout
        connect = env_number("HC_CONNECT_TIMEOUT", int)
        if connect is not None:
            values["connect_timeout_seconds"] = connect
        stop_file = os.environ.get("HC_STOP_FILE")
        if stop_file:
            values["stop_file"] = Path(stop_file)
        values.update({key: val for key, val in overrides.items() if val is not None})
        return cls(**values)

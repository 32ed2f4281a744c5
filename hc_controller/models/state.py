"""Per-host convergence state machine."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class HostState(str, Enum):
    """Lifecycle states of one host's convergence."""

    RUNNING = "running"
    HANDLER_PHASE = "handler_phase"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    HostState.RUNNING: {HostState.HANDLER_PHASE, HostState.FAILED},
    HostState.HANDLER_PHASE: {HostState.SUCCEEDED, HostState.FAILED},
    HostState.SUCCEEDED: set(),
    HostState.FAILED: set(),
}


class HostStateMachine:
    """State tracker owned by a single convergence engine (not shared)."""

    def __init__(self) -> None:
        self._state = HostState.RUNNING
        self._reason: Optional[str] = None

    @property
    def state(self) -> HostState:
        return self._state

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def transition(
        self, new_state: HostState, reason: Optional[str] = None
    ) -> HostState:
        """Attempt a state transition; raise ValueError if invalid."""
        allowed = _ALLOWED_TRANSITIONS.get(self._state, set())
        if new_state not in allowed:
            raise ValueError(f"Invalid transition {self._state} -> {new_state}")
        self._state = new_state
        self._reason = reason
        return self._state

"""Cooperative cancellation shared by all host workers of a run."""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class StopToken:
    """
    Run-wide stop flag checked by every convergence engine between tasks.

    Tripped by SIGINT/SIGTERM, by an explicit `request_stop()` or by the
    presence of a stop file. A task already in flight is never interrupted;
    hosts observe the stop before their next task or handler.
    """

    def __init__(
        self,
        stop_file: Optional[Path] = None,
        enable_signals: bool = True,
        on_stop: Optional[Callable[[], None]] = None,
    ) -> None:
        self.stop_file = Path(stop_file) if stop_file else None
        self._on_stop = on_stop
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._prev_handlers: Dict[int, Callable] = {}
        if enable_signals:
            self._install_signal_handlers()

    def _install_signal_handlers(self) -> None:
        """Capture SIGINT/SIGTERM; only possible from the main thread."""
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self._prev_handlers[sig] = signal.getsignal(sig)
                signal.signal(sig, self._handle_signal)  # type: ignore[arg-type]
            except ValueError:
                logger.debug("Cannot install handler for signal %s outside main thread", sig)
                self._prev_handlers.pop(sig, None)

    def _handle_signal(self, signum: int, frame) -> None:  # type: ignore[override]
        logger.warning("Received signal %s; stopping after in-flight tasks", signum)
        self.request_stop()

    def request_stop(self) -> None:
        """Set the flag and trigger the callback once."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
        if self._on_stop:
            self._on_stop()

    def should_stop(self) -> bool:
        """Return True when stop was requested or the stop file exists."""
        if self._event.is_set():
            return True
        if self.stop_file is not None and self.stop_file.exists():
            logger.info("Stop file %s found", self.stop_file)
            self.request_stop()
            return True
        return False

    def restore(self) -> None:
        """Restore original signal handlers."""
        for sig, handler in self._prev_handlers.items():
            signal.signal(sig, handler)  # type: ignore[arg-type]
        self._prev_handlers.clear()

    def __enter__(self) -> "StopToken":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()

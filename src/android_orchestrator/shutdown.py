"""Graceful shutdown handler for the pipeline.

A signal never interrupts a running stage; it only sets a flag that the
orchestrator checks at the next stage boundary.  The last outcome is saved
immediately so an operator can see where the run stopped.
"""

from __future__ import annotations

import logging
import signal
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class GracefulShutdown:
    """Manages graceful shutdown on SIGINT / SIGTERM.

    Usage::

        shutdown = GracefulShutdown()
        shutdown.install()
        shutdown.set_state(outcome, state_dir)

        # At each stage boundary:
        if shutdown.should_stop:
            ...
    """

    def __init__(self) -> None:
        self._should_stop = False
        self._state: Any = None
        self._state_dir: Path | None = None
        self._handling = False  # reentrancy guard
        self._previous: dict[int, Any] = {}

    @property
    def should_stop(self) -> bool:
        """Whether a shutdown signal has been received."""
        return self._should_stop

    @should_stop.setter
    def should_stop(self, value: bool) -> None:
        self._should_stop = value

    def set_state(self, state: Any, directory: Path | str | None = None) -> None:
        """Inject the outcome record for emergency saving.

        Args:
            state: A ``PipelineOutcome`` instance (or duck-typed equivalent).
            directory: Where ``state.save`` should write.
        """
        self._state = state
        self._state_dir = Path(directory) if directory else None

    def install(self) -> None:
        """Register handlers for SIGINT and SIGTERM, remembering the old ones."""
        for sig in (signal.SIGINT, signal.SIGTERM):
            self._previous[sig] = signal.signal(sig, self._signal_handler)

    def uninstall(self) -> None:
        """Restore the handlers that were active before :meth:`install`."""
        for sig, handler in self._previous.items():
            signal.signal(sig, handler)
        self._previous.clear()

    def _signal_handler(self, signum: int, frame: Any) -> None:
        if self._handling:
            return  # reentrancy guard
        self._handling = True
        logger.warning("Received signal %s -- stopping after the current stage", signum)
        self._should_stop = True
        self._emergency_save()
        self._handling = False

    def _emergency_save(self) -> None:
        """Attempt to save the outcome record during emergency shutdown."""
        if self._state is None:
            logger.warning("No pipeline outcome to save during emergency shutdown")
            return
        try:
            self._state.interrupted = True
            self._state.interrupt_reason = "Signal received"
            self._state.save(self._state_dir)
            logger.info("Emergency state save completed")
        except Exception:
            logger.exception("Failed to save state during emergency shutdown")

"""Signal-driven cancellation for a running release."""

import signal
from contextlib import contextmanager
from typing import Dict, Optional


class CancellationGuard:
    """Turns SIGINT/SIGTERM into KeyboardInterrupt, except inside a shielded block.

    Signals received while shielded are remembered; `checkpoint()` raises for
    them once the shield is lifted.
    """

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, logger):
        self.logger = logger
        self.shielded = False
        self.pending_signal: Optional[int] = None
        self._previous: Dict[int, object] = {}

    @property
    def cancel_requested(self) -> bool:
        return self.pending_signal is not None

    def install(self):
        for signum in self.SIGNALS:
            try:
                self._previous[signum] = signal.signal(signum, self._handle)
            except ValueError:
                self.logger.debug("Signal handlers can only be installed from the main thread.")
                return

    def restore(self):
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()

    def _handle(self, signum, _frame):
        if self.shielded:
            self.pending_signal = signum
            self.logger.warning(
                "Received signal %s during traffic switch; deferring until the swap completes.",
                signum,
            )
            return
        self.logger.warning("Deployment interrupted by signal %s", signum)
        raise KeyboardInterrupt()

    def checkpoint(self):
        if self.pending_signal is not None and not self.shielded:
            raise KeyboardInterrupt()

    @contextmanager
    def shield(self):
        self.shielded = True
        try:
            yield
        finally:
            self.shielded = False

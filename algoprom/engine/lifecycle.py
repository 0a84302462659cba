"""Lifecycle coordinator — process-wide shutdown on SIGINT / SIGTERM.

Shutdown is best-effort and non-blocking: it broadcasts the shutdown
event, cancels every in-flight run and stops the check timers. Runs
unwind on their own (working directories are still removed).
"""

from __future__ import annotations

import asyncio
import logging
import signal

from algoprom.engine.context import CancellationRegistry
from algoprom.engine.scheduler import CheckScheduler

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleCoordinator:
    def __init__(self, scheduler: CheckScheduler, cancellations: CancellationRegistry) -> None:
        self.scheduler = scheduler
        self.cancellations = cancellations
        self._installed: list[signal.Signals] = []
        self._shutting_down = False

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.shutdown, sig.name)
            except (NotImplementedError, RuntimeError):
                logger.warning("Cannot install handler for %s on this platform", sig.name)
                continue
            self._installed.append(sig)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed.clear()

    def shutdown(self, reason: str = "requested") -> None:
        """Stop everything. Safe to call more than once."""
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info("Shutting down (%s)", reason)

        self.scheduler.shutdown.set()
        cancelled = self.cancellations.cancel_all()
        self.scheduler.stop_timers()
        logger.info("Shutdown signalled: %d in-flight run(s) cancelled", cancelled)

    async def wait(self) -> None:
        """Block until shutdown has been requested."""
        await self.scheduler.shutdown.wait()

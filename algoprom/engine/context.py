"""Per-run execution contexts and the registry used to cancel them.

Each run gets a RunContext bound to the asyncio task executing it.
The registry is keyed by check name; a new run replaces its check's
stale entry. Shutdown cancels a snapshot taken under the lock.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Cancellable handle for one in-flight run of a check."""

    check: str
    task: asyncio.Task | None = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _cancelled: bool = field(default=False, init=False, repr=False)

    @classmethod
    def for_current_task(cls, check: str) -> RunContext:
        return cls(check=check, task=asyncio.current_task())

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def age(self) -> float:
        """Seconds since the run started."""
        return (datetime.now(timezone.utc) - self.started_at).total_seconds()

    def cancel(self) -> bool:
        """Request cancellation. Returns False if the run already finished."""
        self._cancelled = True
        if self.task is None or self.task.done():
            return False
        # The run may live on another loop than the caller's thread.
        loop = self.task.get_loop()
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self.task.cancel()
        else:
            loop.call_soon_threadsafe(self.task.cancel)
        return True


class CancellationRegistry:
    """Thread-safe check name → RunContext table."""

    def __init__(self) -> None:
        self._contexts: dict[str, RunContext] = {}
        self._lock = threading.Lock()

    def register(self, ctx: RunContext) -> None:
        with self._lock:
            self._contexts[ctx.check] = ctx

    def release(self, ctx: RunContext) -> None:
        """Drop ``ctx`` unless a newer run of the same check replaced it."""
        with self._lock:
            if self._contexts.get(ctx.check) is ctx:
                del self._contexts[ctx.check]

    def get(self, check: str) -> RunContext | None:
        with self._lock:
            return self._contexts.get(check)

    def snapshot(self) -> list[RunContext]:
        with self._lock:
            return list(self._contexts.values())

    def cancel_all(self) -> int:
        """Cancel every registered run. Returns how many were still active."""
        cancelled = 0
        for ctx in self.snapshot():
            if ctx.cancel():
                cancelled += 1
                logger.info(
                    "Cancelled in-flight run %s of %s after %.1fs", ctx.run_id, ctx.check, ctx.age,
                )
        return cancelled

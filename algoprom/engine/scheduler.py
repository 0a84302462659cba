"""Check scheduler — one independent timer loop per configured check.

Each loop: optional immediate run → one-time random jitter in
[0, interval) seconds → periodic runs every ``interval``. A run
completes before the next fire is awaited, and ``run_now`` waits for
the check's in-flight run, so runs of one check never overlap;
different checks run fully concurrently. Every wait also
watches the shared shutdown event.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Iterable

from algoprom.checks.definitions import Check
from algoprom.checks.output import Output
from algoprom.engine.executor import RunExecutor
from algoprom.errors import AlgopromError, AlgorithmError

logger = logging.getLogger(__name__)


class CheckScheduler:
    """Owns the per-check loops.

    ``seconds`` is the wall-clock length of one interval second; tests
    shrink it to run many ticks quickly.
    """

    def __init__(
        self,
        checks: Iterable[Check],
        executor: RunExecutor,
        shutdown: asyncio.Event | None = None,
        rng: random.Random | None = None,
        seconds: float = 1.0,
    ) -> None:
        self.checks = list(checks)
        self.executor = executor
        self.shutdown = shutdown or asyncio.Event()
        self._rng = rng or random.Random()
        self._seconds = seconds
        self._tasks: dict[str, asyncio.Task[None]] = {}
        # Held for the duration of every run, scheduled or out-of-band.
        self._run_locks: dict[str, asyncio.Lock] = {c.name: asyncio.Lock() for c in self.checks}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start one loop per check."""
        if self._running:
            return
        self._running = True

        if not self.checks:
            logger.info("No checks configured — scheduler idle")
            return

        for check in self.checks:
            self._tasks[check.name] = asyncio.create_task(
                self._check_loop(check), name=f"check-{check.name}",
            )
        logger.info("Scheduler started: %d checks", len(self.checks))

    def stop_timers(self) -> None:
        """Cancel every check loop without waiting for it to unwind."""
        self._running = False
        for task in self._tasks.values():
            task.cancel()

    async def stop(self) -> None:
        """Signal shutdown, cancel all loops and wait for them to exit."""
        self.shutdown.set()
        self.stop_timers()
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped")

    async def run_now(self, name: str) -> Output:
        """Run a check out-of-band. Raises KeyError for unknown names."""
        check = next((c for c in self.checks if c.name == name), None)
        if check is None:
            raise KeyError(name)
        return await self._locked_run(check)

    # ── Loop ─────────────────────────────────────────────────────────────

    async def _locked_run(self, check: Check) -> Output:
        lock = self._run_locks[check.name]
        if lock.locked():
            logger.info("Check %s: waiting for the in-flight run to finish", check.name)
        async with lock:
            return await self.executor.run(check)

    async def _run_once(self, check: Check) -> Output | None:
        try:
            return await self._locked_run(check)
        except AlgorithmError as e:
            logger.warning("Check %s failed: %s", check.name, e.output.error)
            return e.output
        except AlgopromError as e:
            logger.error("Check %s: %s", check.name, e)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Check %s: unexpected error", check.name)
        return None

    async def _wait(self, delay: float) -> bool:
        """Sleep up to ``delay`` seconds. True means shutdown was signalled."""
        if self.shutdown.is_set():
            return True
        if delay <= 0:
            return False
        try:
            await asyncio.wait_for(self.shutdown.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _check_loop(self, check: Check) -> None:
        loop = asyncio.get_running_loop()
        period = check.interval * self._seconds
        try:
            if check.immediate and not self.shutdown.is_set():
                await self._run_once(check)

            jitter = self._rng.randrange(0, check.interval)
            logger.debug("Check %s: jitter %ds, interval %ds", check.name, jitter, check.interval)
            if await self._wait(jitter * self._seconds):
                return

            next_fire = loop.time() + period
            while True:
                if await self._wait(next_fire - loop.time()):
                    return

                await self._run_once(check)

                # Drop fires that elapsed while the run was in progress.
                next_fire += period
                now = loop.time()
                if next_fire <= now:
                    missed = int((now - next_fire) // period) + 1
                    next_fire += missed * period
                    logger.warning("Check %s: run overran, skipped %d tick(s)", check.name, missed)
        except asyncio.CancelledError:
            logger.debug("Check loop %s cancelled", check.name)

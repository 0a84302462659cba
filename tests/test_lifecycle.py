"""Tests for shutdown coordination and the wired-up Agent."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

from algoprom.backends.registry import CapabilityRegistry
from algoprom.checks.definitions import AgentConfig, Datasource
from algoprom.engine.agent import Agent
from algoprom.engine.context import CancellationRegistry, RunContext
from algoprom.measure import MeasurementPool
from algoprom.metrics import FAILED, PROCESSED, SUCCEEDED
from algoprom.store import AuditStore

from tests.conftest import Recorder, make_check, prometheus_handler


class ZeroJitter:
    def randrange(self, start, stop=None, step=1):
        return 0


def _agent(
    checks,
    capabilities: CapabilityRegistry,
    store: AuditStore,
    workdir_root: Path,
) -> Agent:
    config = AgentConfig(
        checks=list(checks),
        datasources=[Datasource(name="prom1", url="http://prom.test")],
    )
    return Agent(
        config,
        store,
        capabilities=capabilities,
        measurements=MeasurementPool(transport=httpx.MockTransport(prometheus_handler)),
        rng=ZeroJitter(),
        workdir_root=workdir_root,
    )


# ── Cancellation registry ────────────────────────────────────────────────────


class TestCancellationRegistry:
    def test_register_and_release(self) -> None:
        registry = CancellationRegistry()
        ctx = RunContext(check="a")
        registry.register(ctx)
        assert registry.get("a") is ctx
        registry.release(ctx)
        assert registry.get("a") is None

    def test_release_keeps_newer_run(self) -> None:
        registry = CancellationRegistry()
        old, new = RunContext(check="a"), RunContext(check="a")
        registry.register(old)
        registry.register(new)
        registry.release(old)
        assert registry.get("a") is new

    def test_cancel_all_skips_finished(self) -> None:
        async def go() -> tuple[int, bool]:
            registry = CancellationRegistry()
            done = asyncio.create_task(asyncio.sleep(0))
            await done
            pending = asyncio.create_task(asyncio.sleep(10))
            registry.register(RunContext(check="done", task=done))
            registry.register(RunContext(check="pending", task=pending))
            count = registry.cancel_all()
            with pytest.raises(asyncio.CancelledError):
                await pending
            return count, registry.get("done").cancelled

        count, marked = asyncio.run(go())
        assert count == 1
        assert marked is True

    def test_cancel_all_empty(self) -> None:
        assert CancellationRegistry().cancel_all() == 0

    def test_context_state_not_constructor_arg(self) -> None:
        ctx = RunContext(check="a")
        assert ctx.cancelled is False
        assert ctx.age >= 0
        with pytest.raises(TypeError):
            RunContext(check="a", _cancelled=True)

    def test_cancel_all_logs_run_age(self, caplog: pytest.LogCaptureFixture) -> None:
        async def go() -> None:
            registry = CancellationRegistry()
            pending = asyncio.create_task(asyncio.sleep(10))
            registry.register(RunContext(
                check="slow", task=pending, started_at=datetime.now(timezone.utc) - timedelta(seconds=42),
            ))
            with caplog.at_level(logging.INFO, logger="algoprom.engine.context"):
                registry.cancel_all()
            with pytest.raises(asyncio.CancelledError):
                await pending

        asyncio.run(go())
        assert "of slow after 42." in caplog.text


# ── Lifecycle ────────────────────────────────────────────────────────────────


class TestLifecycle:
    def test_shutdown_cancels_in_flight_runs(
        self,
        algo: Recorder,
        capabilities: CapabilityRegistry,
        store: AuditStore,
        workdir_root: Path,
    ) -> None:
        algo.delay = 10
        agent = _agent([make_check(interval=1, immediate=True)], capabilities, store, workdir_root)

        async def go() -> None:
            await agent.start()
            await asyncio.sleep(0.1)
            assert agent.cancellations.get("disk-fill") is not None

            agent.lifecycle.shutdown("test")
            await asyncio.wait_for(agent.lifecycle.wait(), 1.0)
            tasks = list(agent.scheduler._tasks.values())
            await asyncio.wait_for(asyncio.gather(*tasks, return_exceptions=True), 1.0)
            assert all(t.done() for t in tasks)
            await agent.stop()

        asyncio.run(go())
        assert agent.lifecycle.shutting_down is True
        assert agent.cancellations.snapshot() == []
        assert list(workdir_root.iterdir()) == []
        assert len(algo.calls) == 1
        m = agent.metrics
        assert (m.value(PROCESSED, "disk-fill"), m.value(SUCCEEDED, "disk-fill"), m.value(FAILED, "disk-fill")) == (1, 0, 0)

    def test_shutdown_is_idempotent(
        self, capabilities: CapabilityRegistry, store: AuditStore, workdir_root: Path,
    ) -> None:
        agent = _agent([], capabilities, store, workdir_root)

        async def go() -> None:
            await agent.start()
            agent.lifecycle.shutdown("first")
            agent.lifecycle.shutdown("second")
            await agent.stop()
            await asyncio.wait_for(agent.lifecycle.wait(), 1.0)

        asyncio.run(go())
        assert agent.scheduler.shutdown.is_set()
        assert agent.scheduler.running is False

    def test_agent_runs_and_audits(
        self,
        algo: Recorder,
        capabilities: CapabilityRegistry,
        store: AuditStore,
        workdir_root: Path,
    ) -> None:
        algo.rc = 2
        agent = _agent([make_check(interval=3600, immediate=True)], capabilities, store, workdir_root)

        async def go() -> None:
            await agent.start()
            for _ in range(100):
                if agent.metrics.value(FAILED, "disk-fill"):
                    break
                await asyncio.sleep(0.01)
            await agent.stop()

        asyncio.run(go())
        assert agent.metrics.value(FAILED, "disk-fill") == 1
        runs = store.list_check_outputs("disk-fill")
        assert len(runs) == 1
        assert runs[0][1].rc == 2

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
    def test_sigterm_triggers_shutdown(
        self, capabilities: CapabilityRegistry, store: AuditStore, workdir_root: Path,
    ) -> None:
        agent = _agent([make_check(interval=3600)], capabilities, store, workdir_root)

        async def go() -> None:
            await agent.start(install_signal_handlers=True)
            try:
                asyncio.get_running_loop().call_later(0.05, os.kill, os.getpid(), signal.SIGTERM)
                await asyncio.wait_for(agent.lifecycle.wait(), 2.0)
            finally:
                agent.lifecycle.remove_signal_handlers()
                await agent.stop()

        asyncio.run(go())
        assert agent.lifecycle.shutting_down is True

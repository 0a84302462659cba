"""Agent — wires config, audit store, backends and engine together."""

from __future__ import annotations

import logging
import random
from pathlib import Path

from algoprom.backends.registry import CapabilityRegistry
from algoprom.checks.definitions import AgentConfig
from algoprom.config import Settings
from algoprom.engine.context import CancellationRegistry
from algoprom.engine.executor import RunExecutor
from algoprom.engine.lifecycle import LifecycleCoordinator
from algoprom.engine.scheduler import CheckScheduler
from algoprom.measure import MeasurementPool
from algoprom.metrics import CheckMetrics
from algoprom.store import AuditStore

logger = logging.getLogger(__name__)


class Agent:
    """Lifecycle:
        agent = Agent.from_settings(settings)
        await agent.start()
        ...
        await agent.stop()
    """

    def __init__(
        self,
        config: AgentConfig,
        store: AuditStore,
        metrics: CheckMetrics | None = None,
        capabilities: CapabilityRegistry | None = None,
        measurements: MeasurementPool | None = None,
        rng: random.Random | None = None,
        workdir_root: Path | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.metrics = metrics or CheckMetrics()
        self.capabilities = capabilities or CapabilityRegistry(config.algorithmers, config.actioners)
        self.measurements = measurements or MeasurementPool()
        self.cancellations = CancellationRegistry()
        self.executor = RunExecutor(
            config=config,
            capabilities=self.capabilities,
            store=store,
            metrics=self.metrics,
            cancellations=self.cancellations,
            measurements=self.measurements,
            workdir_root=workdir_root,
        )
        self.scheduler = CheckScheduler(config.checks, self.executor, rng=rng)
        self.lifecycle = LifecycleCoordinator(self.scheduler, self.cancellations)

    @classmethod
    def from_settings(cls, settings: Settings) -> Agent:
        """Load config and open the store. Raises ConfigError / sqlite errors."""
        config = AgentConfig.load(settings.config_file)
        store = AuditStore(settings.db_path)
        return cls(config, store)

    async def start(self, install_signal_handlers: bool = False) -> None:
        if install_signal_handlers:
            self.lifecycle.install_signal_handlers()
        await self.scheduler.start()

    async def stop(self) -> None:
        self.lifecycle.shutdown("agent stop")
        await self.scheduler.stop()
        await self.measurements.aclose()
        self.store.close()
        logger.info("Agent stopped")

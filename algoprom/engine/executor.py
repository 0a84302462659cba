"""Run executor — performs one evaluation of a check.

    resolve algorithmer → working dir → fetch inputs → apply algorithm
      → success: persist
      → failure: persist, then for each action: act → persist action
                 → persist check again with the new action key

Errors never escape a run as anything but an AlgopromError (or a
cancellation); the scheduler logs them and keeps the check's cadence.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from algoprom.backends.base import Actioner, Algorithmer
from algoprom.backends.registry import CapabilityRegistry
from algoprom.checks.definitions import ActionMeta, AgentConfig, Check
from algoprom.checks.output import Output
from algoprom.engine.context import CancellationRegistry, RunContext
from algoprom.errors import (
    AlgopromError,
    AlgorithmError,
    BackendNotFoundError,
    DatasourceNotFoundError,
    MeasurementError,
    StoreError,
    WorkingDirError,
)
from algoprom.measure import MeasurementPool, MeasurementResult
from algoprom.metrics import FAILED, PROCESSED, SUCCEEDED, CheckMetrics
from algoprom.store import AuditStore

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


class RunExecutor:
    """Runs checks one at a time per call; safe to share across check tasks."""

    def __init__(
        self,
        config: AgentConfig,
        capabilities: CapabilityRegistry,
        store: AuditStore,
        metrics: CheckMetrics,
        cancellations: CancellationRegistry,
        measurements: MeasurementPool | None = None,
        workdir_root: Path | None = None,
    ) -> None:
        self.config = config
        self.capabilities = capabilities
        self.store = store
        self.metrics = metrics
        self.cancellations = cancellations
        self.measurements = measurements or MeasurementPool()
        self.workdir_root = workdir_root

    async def run(self, check: Check) -> Output:
        """Evaluate ``check`` once and return its Output.

        Raises BackendNotFoundError, DatasourceNotFoundError,
        MeasurementError or WorkingDirError when the run cannot get as far
        as the algorithm, and AlgorithmError (after all actions ran) when
        the algorithm itself reported an invocation error.
        """
        self.metrics.inc(PROCESSED, check.name)

        algorithmer = self.capabilities.resolve_algorithmer(check.algorithmer)
        if algorithmer is None:
            raise BackendNotFoundError("algorithmer", check.algorithmer)

        try:
            working_dir = Path(tempfile.mkdtemp(
                prefix=f"algoprom-{_UNSAFE.sub('_', check.name)}-",
                dir=str(self.workdir_root) if self.workdir_root else None,
            ))
        except OSError as e:
            self.metrics.inc(FAILED, check.name)
            raise WorkingDirError(f"check {check.name!r}: cannot create working dir: {e}") from e

        ctx = RunContext.for_current_task(check.name)
        self.cancellations.register(ctx)
        try:
            return await self._run(ctx, check, algorithmer, working_dir)
        except asyncio.CancelledError:
            reason = "shutdown" if ctx.cancelled else "task cancelled"
            logger.info("Check %s: run %s aborted after %.1fs (%s)", check.name, ctx.run_id, ctx.age, reason)
            raise
        finally:
            self.cancellations.release(ctx)
            shutil.rmtree(working_dir, ignore_errors=True)

    async def _run(
        self,
        ctx: RunContext,
        check: Check,
        algorithmer: Algorithmer,
        working_dir: Path,
    ) -> Output:
        try:
            inputs = await self._fetch_inputs(check)
        except AlgopromError:
            self.metrics.inc(FAILED, check.name)
            raise
        except Exception as e:
            self.metrics.inc(FAILED, check.name)
            raise MeasurementError(f"check {check.name!r}: fetching inputs failed: {e}") from e

        output = await self._apply(ctx, algorithmer, check, inputs, working_dir)
        self._log_output(check, "algorithm", check.algorithm, output)

        if output.succeeded:
            self._persist_check(check, output)
            self.metrics.inc(SUCCEEDED, check.name)
            return output

        self.metrics.inc(FAILED, check.name)
        self._persist_check(check, output)

        for action in check.actions:
            actioner = self.capabilities.resolve_actioner(action.actioner)
            if actioner is None:
                logger.error(
                    "Check %s: action %s skipped: %s",
                    check.name, action.name, BackendNotFoundError("actioner", action.actioner),
                )
                continue

            action_out = await self._act(ctx, actioner, check, action, output, working_dir)
            self._log_output(check, "action", action.name, action_out)

            key = self._persist_action(check, action, action_out)
            if key is not None:
                output.action_keys.append(key)
            self._persist_check(check, output)

        if output.error:
            raise AlgorithmError(check.name, output)
        return output

    # ── Steps ────────────────────────────────────────────────────────────

    async def _fetch_inputs(self, check: Check) -> dict[str, MeasurementResult]:
        """Fetch every declared input, sequentially and in order."""
        inputs: dict[str, MeasurementResult] = {}
        for inp in check.inputs:
            datasource = self.config.datasource(inp.datasource)
            if datasource is None:
                raise DatasourceNotFoundError(inp.datasource)
            client = self.measurements.client_for(datasource)
            inputs[inp.name] = await client.fetch(inp.query or inp.name)
        return inputs

    async def _apply(
        self,
        ctx: RunContext,
        algorithmer: Algorithmer,
        check: Check,
        inputs: dict[str, MeasurementResult],
        working_dir: Path,
    ) -> Output:
        started = datetime.now(timezone.utc)
        try:
            output = await algorithmer.apply(
                ctx, check.algorithm, dict(check.algorithm_params), inputs, working_dir,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Check %s: algorithmer %s raised", check.name, check.algorithmer)
            output = Output(timestamp=started, error=f"{type(e).__name__}: {e}")
        if output is None:
            output = Output(timestamp=started, error="algorithmer returned no output")
        return output.finish()

    async def _act(
        self,
        ctx: RunContext,
        actioner: Actioner,
        check: Check,
        action: ActionMeta,
        output: Output,
        working_dir: Path,
    ) -> Output:
        started = datetime.now(timezone.utc)
        try:
            action_out = await actioner.act(
                ctx, action.action, output.combined_out, dict(action.params), working_dir,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Check %s: actioner %s raised", check.name, action.actioner)
            action_out = Output(timestamp=started, error=f"{type(e).__name__}: {e}")
        if action_out is None:
            action_out = Output(timestamp=started, error="actioner returned no output")
        action_out.action_keys.clear()
        return action_out.finish()

    # ── Persistence (best effort) ────────────────────────────────────────

    def _persist_check(self, check: Check, output: Output) -> str | None:
        try:
            return self.store.put_check(check.name, output)
        except StoreError as e:
            logger.error("Check %s: audit write failed: %s", check.name, e)
            return None

    def _persist_action(self, check: Check, action: ActionMeta, output: Output) -> str | None:
        try:
            return self.store.put_action(check.name, action, output)
        except StoreError as e:
            logger.error("Check %s: audit write for action %s failed: %s", check.name, action.name, e)
            return None

    @staticmethod
    def _log_output(check: Check, kind: str, name: str, output: Output) -> None:
        level = logging.INFO if check.debug else logging.DEBUG
        logger.log(
            level, "Check %s: %s %s rc=%d status=%s\n%s",
            check.name, kind, name, output.rc, output.status.value, output.combined_out,
        )
        if output.error:
            logger.warning("Check %s: %s %s error: %s", check.name, kind, name, output.error)

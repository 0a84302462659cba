"""Backend capabilities — the contracts algorithmers and actioners implement."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from algoprom.checks.output import Output
from algoprom.engine.context import RunContext
from algoprom.measure import MeasurementResult


class Algorithmer:
    """Evaluates a check's inputs and decides pass/fail.

    ``apply`` must always return an Output: a run that could not even
    start comes back with ``rc=-1`` and ``error`` set. It must stop
    promptly when its task is cancelled.
    """

    backend_type: str = "base"

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> Algorithmer:
        return cls()

    async def apply(
        self,
        ctx: RunContext,
        algorithm: str,
        params: dict[str, str],
        inputs: dict[str, MeasurementResult],
        working_dir: Path,
    ) -> Output:
        raise NotImplementedError


class Actioner:
    """Notifies or remediates after a failed check. Same contract as Algorithmer."""

    backend_type: str = "base"

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> Actioner:
        return cls()

    async def act(
        self,
        ctx: RunContext,
        action: str,
        check_output: str,
        params: dict[str, str],
        working_dir: Path,
    ) -> Output:
        raise NotImplementedError

"""Shared test fixtures — fake backends, a mocked Prometheus and a temp store."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import pytest

from algoprom.backends.base import Actioner, Algorithmer
from algoprom.backends.registry import CapabilityRegistry
from algoprom.checks.definitions import (
    ActionMeta,
    AgentConfig,
    BackendDef,
    Check,
    CheckInput,
    Datasource,
)
from algoprom.checks.output import Output
from algoprom.engine.context import CancellationRegistry
from algoprom.engine.executor import RunExecutor
from algoprom.measure import MeasurementPool
from algoprom.metrics import CheckMetrics
from algoprom.store import AuditStore


@dataclass
class Recorder:
    """Scripted behaviour + call log shared by every instance of a fake backend."""

    rc: int = 0
    error: str = ""
    out: str = "ok"
    raises: Exception | None = None
    delay: float = 0.0
    calls: list[dict[str, Any]] = field(default_factory=list)


class FakeAlgorithmer(Algorithmer):
    backend_type = "fake"

    def __init__(self, recorder: Recorder) -> None:
        self.recorder = recorder

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> FakeAlgorithmer:
        return cls(settings["recorder"])

    async def apply(self, ctx, algorithm, params, inputs, working_dir: Path) -> Output:
        self.recorder.calls.append({
            "check": ctx.check,
            "algorithm": algorithm,
            "params": params,
            "inputs": inputs,
            "working_dir": working_dir,
            "dir_existed": working_dir.is_dir(),
        })
        if self.recorder.delay:
            await asyncio.sleep(self.recorder.delay)
        if self.recorder.raises:
            raise self.recorder.raises
        return Output().finish(rc=self.recorder.rc, combined_out=self.recorder.out, error=self.recorder.error)


class FakeActioner(Actioner):
    backend_type = "fake"

    def __init__(self, recorder: Recorder) -> None:
        self.recorder = recorder

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> FakeActioner:
        return cls(settings["recorder"])

    async def act(self, ctx, action, check_output, params, working_dir: Path) -> Output:
        self.recorder.calls.append({
            "check": ctx.check,
            "action": action,
            "check_output": check_output,
            "params": params,
        })
        if self.recorder.raises:
            raise self.recorder.raises
        return Output().finish(rc=self.recorder.rc, combined_out=self.recorder.out, error=self.recorder.error)


def make_check(
    name: str = "disk-fill",
    interval: int = 60,
    algorithmer: str = "fake",
    inputs: tuple[CheckInput, ...] = (CheckInput(name="usage", datasource="prom1", query="up"),),
    actions: tuple[ActionMeta, ...] = (),
    immediate: bool = False,
) -> Check:
    return Check(
        name=name,
        interval=interval,
        algorithmer=algorithmer,
        algorithm="threshold",
        algorithm_params={"max": "90"},
        inputs=inputs,
        actions=actions,
        immediate=immediate,
    )


def prometheus_handler(request: httpx.Request) -> httpx.Response:
    """Answers every instant query with a one-sample vector."""
    query = request.url.params.get("query", "")
    return httpx.Response(200, json={
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [{"metric": {"query": query}, "value": [1700000000, "42"]}],
        },
    })


@pytest.fixture
def algo() -> Recorder:
    return Recorder()


@pytest.fixture
def actions() -> Recorder:
    return Recorder()


@pytest.fixture
def capabilities(algo: Recorder, actions: Recorder) -> CapabilityRegistry:
    return CapabilityRegistry(
        algorithmers=[BackendDef(type="fake", settings={"recorder": algo})],
        actioners=[BackendDef(type="fake", settings={"recorder": actions})],
        algorithmer_types={"fake": FakeAlgorithmer},
        actioner_types={"fake": FakeActioner},
    )


@pytest.fixture
def store(tmp_path: Path) -> AuditStore:
    s = AuditStore(db_path=tmp_path / "audit.db")
    yield s
    s.close()


@pytest.fixture
def workdir_root(tmp_path: Path) -> Path:
    root = tmp_path / "work"
    root.mkdir()
    return root


@pytest.fixture
def agent_config() -> AgentConfig:
    return AgentConfig(datasources=[Datasource(name="prom1", url="http://prom.test")])


@pytest.fixture
def executor(
    agent_config: AgentConfig,
    capabilities: CapabilityRegistry,
    store: AuditStore,
    workdir_root: Path,
) -> RunExecutor:
    return RunExecutor(
        config=agent_config,
        capabilities=capabilities,
        store=store,
        metrics=CheckMetrics(),
        cancellations=CancellationRegistry(),
        measurements=MeasurementPool(transport=httpx.MockTransport(prometheus_handler)),
        workdir_root=workdir_root,
    )

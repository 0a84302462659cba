"""API routes for the audit log and metrics.

Endpoints:
  GET  /metrics                        — Prometheus exposition
  GET  /api/checks                     — configured checks + stored names
  GET  /api/checks/{name}              — run history (oldest first)
  GET  /api/checks/{name}/latest       — most recent run
  GET  /api/checks/{name}/{key}        — one stored run
  POST /api/checks/{name}/run          — run a check now
  GET  /api/actions/{key}              — one stored action output
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel

from algoprom.checks.output import Output
from algoprom.errors import AlgopromError, AlgorithmError

logger = logging.getLogger(__name__)

router = APIRouter()


class OutputResponse(BaseModel):
    key: str | None = None
    rc: int
    combined_out: str
    timestamp: str
    status: str
    error: str
    action_keys: list[str]


class HistoryResponse(BaseModel):
    check: str
    runs: list[OutputResponse]


def _respond(output: Output, key: str | None = None) -> OutputResponse:
    return OutputResponse(key=key, **output.to_dict())


def _agent(request: Request) -> Any:
    return request.app.state.agent


@router.get("/metrics")
def metrics(request: Request) -> Response:
    return Response(content=_agent(request).metrics.render(), media_type=CONTENT_TYPE_LATEST)


@router.get("/api/checks")
def list_checks(request: Request) -> dict[str, Any]:
    agent = _agent(request)
    return {
        "checks": [
            {
                "name": c.name,
                "interval": c.interval,
                "algorithmer": c.algorithmer,
                "algorithm": c.algorithm,
                "inputs": [i.name for i in c.inputs],
                "actions": [a.name for a in c.actions],
            }
            for c in agent.config.checks
        ],
        "stored": agent.store.list_check_names(),
    }


@router.get("/api/checks/{name}", response_model=HistoryResponse)
def check_history(
    name: str,
    request: Request,
    limit: int = Query(default=100, ge=1, le=10_000),
) -> HistoryResponse:
    outputs = _agent(request).store.list_check_outputs(name, limit)
    if not outputs:
        raise HTTPException(status_code=404, detail=f"No runs stored for check: {name}")
    return HistoryResponse(check=name, runs=[_respond(o, k) for k, o in outputs])


@router.get("/api/checks/{name}/latest", response_model=OutputResponse)
def latest_run(name: str, request: Request) -> OutputResponse:
    latest = _agent(request).store.latest_check(name)
    if latest is None:
        raise HTTPException(status_code=404, detail=f"No runs stored for check: {name}")
    key, output = latest
    return _respond(output, key)


@router.get("/api/checks/{name}/{key}", response_model=OutputResponse)
def get_run(name: str, key: str, request: Request) -> OutputResponse:
    output = _agent(request).store.get_check(name, key)
    if output is None:
        raise HTTPException(status_code=404, detail=f"Run not found: {name}/{key}")
    return _respond(output, key)


@router.post("/api/checks/{name}/run", response_model=OutputResponse)
async def run_check(name: str, request: Request) -> OutputResponse:
    agent = _agent(request)
    try:
        output = await agent.scheduler.run_now(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown check: {name}")
    except AlgorithmError as e:
        output = e.output
    except AlgopromError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return _respond(output)


@router.get("/api/actions/{key}", response_model=OutputResponse)
def get_action(key: str, request: Request) -> OutputResponse:
    output = _agent(request).store.get_action(key)
    if output is None:
        raise HTTPException(status_code=404, detail=f"Action output not found: {key}")
    return _respond(output, key)

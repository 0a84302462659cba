"""Measurement acquisition — instant queries against a Prometheus datasource.

All methods return a MeasurementResult or raise MeasurementError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from algoprom.checks.definitions import Datasource
from algoprom.errors import MeasurementError

logger = logging.getLogger(__name__)


@dataclass
class MeasurementResult:
    """Typed result of one query, as returned by ``/api/v1/query``."""

    result_type: str
    result: Any = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"resultType": self.result_type, "result": self.result}


class MeasurementClient:
    """Async httpx client bound to a single datasource."""

    def __init__(self, datasource: Datasource, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.datasource = datasource
        try:
            self._client = httpx.AsyncClient(
                base_url=datasource.url.rstrip("/"),
                timeout=datasource.timeout,
                transport=transport,
            )
        except httpx.InvalidURL as e:
            raise MeasurementError(f"{datasource.name}: invalid url {datasource.url!r}: {e}") from e

    async def fetch(self, query: str) -> MeasurementResult:
        """Run an instant query and return its data section."""
        try:
            resp = await self._client.get("/api/v1/query", params={"query": query})
        except httpx.HTTPError as e:
            raise MeasurementError(
                f"{self.datasource.name}: request failed: {type(e).__name__}: {e}"
            ) from e

        if resp.status_code != 200:
            raise MeasurementError(
                f"{self.datasource.name}: HTTP {resp.status_code}: {resp.text[:200]}"
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise MeasurementError(f"{self.datasource.name}: invalid JSON response") from e

        if not isinstance(body, dict) or body.get("status") != "success":
            error = body.get("error", "unknown error") if isinstance(body, dict) else "unexpected body"
            raise MeasurementError(f"{self.datasource.name}: query failed: {error}")

        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise MeasurementError(f"{self.datasource.name}: malformed data section")
        return MeasurementResult(
            result_type=data.get("resultType", ""),
            result=data.get("result", []),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


class MeasurementPool:
    """Caches one MeasurementClient per datasource name."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport
        self._clients: dict[str, MeasurementClient] = {}

    def client_for(self, datasource: Datasource) -> MeasurementClient:
        client = self._clients.get(datasource.name)
        if client is None:
            client = MeasurementClient(datasource, transport=self._transport)
            self._clients[datasource.name] = client
        return client

    async def aclose(self) -> None:
        for client in self._clients.values():
            try:
                await client.aclose()
            except Exception:
                logger.exception("Failed to close client for %s", client.datasource.name)
        self._clients.clear()

"""Tests for the Prometheus measurement client."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from algoprom.checks.definitions import Datasource
from algoprom.errors import MeasurementError
from algoprom.measure import MeasurementClient, MeasurementPool, MeasurementResult

from tests.conftest import prometheus_handler

PROM = Datasource(name="prom1", url="http://prom.test/")


def _fetch(handler, query: str = "up") -> MeasurementResult:
    async def go() -> MeasurementResult:
        client = MeasurementClient(PROM, transport=httpx.MockTransport(handler))
        try:
            return await client.fetch(query)
        finally:
            await client.aclose()

    return asyncio.run(go())


class TestMeasurementClient:
    def test_instant_query(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            return prometheus_handler(request)

        result = _fetch(handler, "node_load1")

        assert result.result_type == "vector"
        assert result.result[0]["value"] == [1700000000, "42"]
        assert seen[0].path == "/api/v1/query"
        assert seen[0].params["query"] == "node_load1"

    def test_to_dict(self) -> None:
        result = MeasurementResult("scalar", [1, "3"])
        assert result.to_dict() == {"resultType": "scalar", "result": [1, "3"]}

    def test_http_status_error(self) -> None:
        with pytest.raises(MeasurementError, match="HTTP 500"):
            _fetch(lambda r: httpx.Response(500, text="oops"))

    def test_query_error_status(self) -> None:
        body = {"status": "error", "errorType": "bad_data", "error": "parse error"}
        with pytest.raises(MeasurementError, match="parse error"):
            _fetch(lambda r: httpx.Response(200, json=body))

    def test_invalid_json(self) -> None:
        with pytest.raises(MeasurementError, match="invalid JSON"):
            _fetch(lambda r: httpx.Response(200, text="<html>"))

    def test_malformed_data_section(self) -> None:
        body = {"status": "success", "data": "oops"}
        with pytest.raises(MeasurementError, match="malformed"):
            _fetch(lambda r: httpx.Response(200, json=body))

    def test_invalid_url(self) -> None:
        with pytest.raises(MeasurementError, match="invalid url"):
            MeasurementClient(Datasource(name="bad", url="http://prom:notaport"))

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(MeasurementError, match="ConnectTimeout"):
            _fetch(handler)


class TestMeasurementPool:
    def test_client_cached_per_datasource(self) -> None:
        async def go() -> None:
            pool = MeasurementPool(transport=httpx.MockTransport(prometheus_handler))
            a = pool.client_for(PROM)
            assert pool.client_for(PROM) is a
            other = pool.client_for(Datasource(name="prom2", url="http://other.test"))
            assert other is not a
            await pool.aclose()
            assert pool.client_for(PROM) is not a
            await pool.aclose()

        asyncio.run(go())

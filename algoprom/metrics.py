"""Per-check run counters exported in Prometheus format."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, generate_latest

PROCESSED = "processed"
SUCCEEDED = "succeeded"
FAILED = "failed"


class CheckMetrics:
    """processed / succeeded / failed counters labelled by check name.

    Each instance owns its CollectorRegistry so that several agents
    (or tests) can live in one process.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self._counters = {
            PROCESSED: Counter(
                "algoprom_checks_processed_total",
                "Check runs started",
                ["check"],
                registry=self.registry,
            ),
            SUCCEEDED: Counter(
                "algoprom_checks_succeeded_total",
                "Check runs whose algorithm passed",
                ["check"],
                registry=self.registry,
            ),
            FAILED: Counter(
                "algoprom_checks_failed_total",
                "Check runs that failed",
                ["check"],
                registry=self.registry,
            ),
        }

    def inc(self, kind: str, check: str) -> None:
        self._counters[kind].labels(check).inc()

    def value(self, kind: str, check: str) -> float:
        """Current counter value (0 if the check never recorded one)."""
        sample = self.registry.get_sample_value(
            f"algoprom_checks_{kind}_total", {"check": check},
        )
        return sample or 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)

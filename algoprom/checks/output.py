"""Run result records — one per algorithm or action invocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Status(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Output:
    """Result of a single algorithm or action invocation.

    ``rc`` stays at -1 until the backend process has actually run.
    ``action_keys`` is only ever filled on check outputs; action outputs
    leave it empty.
    """

    rc: int = -1
    combined_out: str = ""
    timestamp: datetime = field(default_factory=_utcnow)
    status: Status = Status.FAILED
    error: str = ""
    action_keys: list[str] = field(default_factory=list)

    def finish(self, rc: int | None = None, combined_out: str | None = None, error: str | None = None) -> Output:
        """Settle the result and derive ``status`` from ``rc`` and ``error``."""
        if rc is not None:
            self.rc = rc
        if combined_out is not None:
            self.combined_out = combined_out
        if error is not None:
            self.error = error
        self.status = Status.SUCCESS if self.rc == 0 and not self.error else Status.FAILED
        return self

    @property
    def succeeded(self) -> bool:
        return self.status == Status.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "rc": self.rc,
            "combined_out": self.combined_out,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "error": self.error,
            "action_keys": list(self.action_keys),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Output:
        ts = datetime.fromisoformat(data["timestamp"])
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return cls(
            rc=int(data.get("rc", -1)),
            combined_out=data.get("combined_out", ""),
            timestamp=ts,
            status=Status(data.get("status", Status.FAILED.value)),
            error=data.get("error", "") or "",
            action_keys=list(data.get("action_keys") or []),
        )

"""Exception hierarchy shared across the agent."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from algoprom.checks.output import Output


class AlgopromError(Exception):
    """Base class for every error raised by the agent."""


class ConfigError(AlgopromError):
    """Raised when the agent configuration cannot be loaded. Fatal at startup."""


class BackendNotFoundError(AlgopromError):
    """Raised when no algorithmer/actioner is registered for a type."""

    def __init__(self, kind: str, backend_type: str) -> None:
        self.kind = kind
        self.backend_type = backend_type
        super().__init__(f"{kind} backend not found: {backend_type!r}")


class DatasourceNotFoundError(AlgopromError):
    """Raised when a check input names a datasource that is not configured."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"datasource not found: {name!r}")


class MeasurementError(AlgopromError):
    """Raised when a measurement cannot be fetched from its datasource."""


class WorkingDirError(AlgopromError):
    """Raised when the per-run working directory cannot be created."""


class AlgorithmError(AlgopromError):
    """Raised after a failed run whose algorithm reported an invocation error."""

    def __init__(self, check: str, output: Output) -> None:
        self.check = check
        self.output = output
        super().__init__(f"check {check!r}: algorithm failed: {output.error}")


class StoreError(AlgopromError):
    """Raised when the audit store cannot read or write a record."""

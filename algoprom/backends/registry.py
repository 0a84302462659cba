"""Capability registry — resolves configured backend types to implementations.

Resolution is a linear scan over the configured descriptors; the first
one whose ``type`` matches wins. Unknown types resolve to ``None`` and
the caller decides whether that is fatal for the run.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from algoprom.backends.base import Actioner, Algorithmer
from algoprom.backends.python import PythonActioner, PythonAlgorithmer
from algoprom.backends.webhook import WebhookActioner
from algoprom.checks.definitions import BackendDef

logger = logging.getLogger(__name__)

ALGORITHMER_TYPES: dict[str, type[Algorithmer]] = {
    PythonAlgorithmer.backend_type: PythonAlgorithmer,
}

ACTIONER_TYPES: dict[str, type[Actioner]] = {
    PythonActioner.backend_type: PythonActioner,
    WebhookActioner.backend_type: WebhookActioner,
}


class CapabilityRegistry:
    """Maps configuration-declared type strings to backend instances."""

    def __init__(
        self,
        algorithmers: Sequence[BackendDef] = (),
        actioners: Sequence[BackendDef] = (),
        algorithmer_types: dict[str, type[Algorithmer]] | None = None,
        actioner_types: dict[str, type[Actioner]] | None = None,
    ) -> None:
        self._algorithmer_types = algorithmer_types if algorithmer_types is not None else ALGORITHMER_TYPES
        self._actioner_types = actioner_types if actioner_types is not None else ACTIONER_TYPES
        self._algorithmers = _known(algorithmers, self._algorithmer_types, "algorithmer")
        self._actioners = _known(actioners, self._actioner_types, "actioner")

    def resolve_algorithmer(self, backend_type: str) -> Algorithmer | None:
        for d in self._algorithmers:
            if d.type == backend_type:
                return self._algorithmer_types[d.type].from_settings(d.settings)
        return None

    def resolve_actioner(self, backend_type: str) -> Actioner | None:
        for d in self._actioners:
            if d.type == backend_type:
                return self._actioner_types[d.type].from_settings(d.settings)
        return None


def _known(defs: Sequence[BackendDef], table: dict[str, type], kind: str) -> list[BackendDef]:
    result = []
    for d in defs:
        if d.type not in table:
            logger.warning("Ignoring %s with unknown type %r", kind, d.type)
            continue
        result.append(d)
    return result

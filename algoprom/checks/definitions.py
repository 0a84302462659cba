"""Agent configuration — loads algoprom.yaml into typed, immutable models.

Single source of truth for checks, datasources and backend descriptors.
The scheduler, executor and capability registry all consume this.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from algoprom.errors import ConfigError

logger = logging.getLogger(__name__)

_DURATION_PART = re.compile(r"(\d+)(h|m|s)")
_DURATION_UNITS = {"h": 3600, "m": 60, "s": 1}


# ── Data models ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Datasource:
    """Named Prometheus endpoint that check inputs are fetched from."""

    name: str
    url: str
    timeout: float = 30.0


@dataclass(frozen=True)
class CheckInput:
    """One measurement fetched before the algorithm runs."""

    name: str
    datasource: str
    query: str = ""


@dataclass(frozen=True)
class ActionMeta:
    """An action dispatched (in declared order) when a check fails."""

    name: str
    actioner: str
    action: str
    params: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BackendDef:
    """Algorithmer/actioner descriptor — ``type`` plus backend-specific settings."""

    type: str
    settings: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Check:
    """A periodically evaluated condition."""

    name: str
    interval: int  # seconds
    algorithmer: str
    algorithm: str
    immediate: bool = False
    algorithm_params: dict[str, str] = field(default_factory=dict)
    inputs: tuple[CheckInput, ...] = ()
    actions: tuple[ActionMeta, ...] = ()
    debug: bool = False


@dataclass
class AgentConfig:
    """Everything the agent needs from its YAML file."""

    checks: list[Check] = field(default_factory=list)
    datasources: list[Datasource] = field(default_factory=list)
    algorithmers: list[BackendDef] = field(default_factory=list)
    actioners: list[BackendDef] = field(default_factory=list)

    def datasource(self, name: str) -> Datasource | None:
        return next((d for d in self.datasources if d.name == name), None)

    def check(self, name: str) -> Check | None:
        return next((c for c in self.checks if c.name == name), None)

    @classmethod
    def load(cls, path: Path | str) -> AgentConfig:
        """Parse the YAML file at ``path``. Raises ConfigError on any problem."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse {path}: {e}") from e

        config = cls.from_dict(raw)
        logger.info(
            "Loaded %d checks, %d datasources from %s",
            len(config.checks), len(config.datasources), path,
        )
        return config

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AgentConfig:
        if not isinstance(raw, dict):
            raise ConfigError("Config root must be a mapping")
        try:
            datasources = [_parse_datasource(d) for d in raw.get("datasources") or []]
            algorithmers = [_parse_backend(b) for b in raw.get("algorithmers") or []]
            actioners = [_parse_backend(b) for b in raw.get("actioners") or []]
            checks = [_parse_check(c) for c in raw.get("checks") or []]
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Malformed config entry: {e}") from e

        seen: set[str] = set()
        for c in checks:
            if c.name in seen:
                raise ConfigError(f"Duplicate check name: {c.name}")
            seen.add(c.name)

        return cls(
            checks=checks,
            datasources=datasources,
            algorithmers=algorithmers,
            actioners=actioners,
        )


# ── Parsers ──────────────────────────────────────────────────────────────────


def parse_interval(value: Any) -> int:
    """Interval in whole seconds from an int or a ``1h30m``-style string."""
    if isinstance(value, bool):
        raise ValueError(f"invalid interval: {value!r}")
    if isinstance(value, (int, float)):
        seconds = int(value)
    else:
        text = str(value).strip()
        if text.isdigit():
            seconds = int(text)
        else:
            parts = _DURATION_PART.findall(text)
            if not parts or "".join(n + u for n, u in parts) != text:
                raise ValueError(f"invalid interval: {value!r}")
            seconds = sum(int(n) * _DURATION_UNITS[u] for n, u in parts)
    if seconds <= 0:
        raise ValueError(f"interval must be positive, got {value!r}")
    return seconds


def _str_map(raw: Any) -> dict[str, str]:
    return {str(k): str(v) for k, v in (raw or {}).items()}


def _parse_datasource(raw: dict[str, Any]) -> Datasource:
    return Datasource(
        name=raw["name"],
        url=raw["url"],
        timeout=float(raw.get("timeout", 30.0)),
    )


def _parse_backend(raw: dict[str, Any]) -> BackendDef:
    settings = {k: v for k, v in raw.items() if k != "type"}
    return BackendDef(type=raw["type"], settings=settings)


def _parse_check(raw: dict[str, Any]) -> Check:
    inputs = tuple(
        CheckInput(
            name=i["name"],
            datasource=i["datasource"],
            query=i.get("query", ""),
        )
        for i in raw.get("inputs") or []
    )
    actions = tuple(
        ActionMeta(
            name=a["name"],
            actioner=a["actioner"],
            action=a.get("action", a["name"]),
            params=_str_map(a.get("params")),
        )
        for a in raw.get("actions") or []
    )
    return Check(
        name=raw["name"],
        interval=parse_interval(raw["interval"]),
        algorithmer=raw["algorithmer"],
        algorithm=raw["algorithm"],
        immediate=bool(raw.get("immediate", False)),
        algorithm_params=_str_map(raw.get("algorithm_params")),
        inputs=inputs,
        actions=actions,
        debug=bool(raw.get("debug", False)),
    )

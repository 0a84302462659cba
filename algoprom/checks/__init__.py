
from algoprom.checks.definitions import (
    ActionMeta,
    AgentConfig,
    BackendDef,
    Check,
    CheckInput,
    Datasource,
)
from algoprom.checks.output import Output, Status

__all__ = [
    "ActionMeta",
    "AgentConfig",
    "BackendDef",
    "Check",
    "CheckInput",
    "Datasource",
    "Output",
    "Status",
]

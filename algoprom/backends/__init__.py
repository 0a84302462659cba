"""Pluggable algorithm and action backends."""

from algoprom.backends.base import Actioner, Algorithmer
from algoprom.backends.registry import CapabilityRegistry

__all__ = ["Actioner", "Algorithmer", "CapabilityRegistry"]

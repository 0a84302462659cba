"""algoprom — scheduled metric checks with pluggable algorithms and actions."""

__version__ = "0.1.0"

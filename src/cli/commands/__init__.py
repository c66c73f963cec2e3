"""CLI command modules."""

from .memory import memory

__all__ = ["memory"]

"""Agent-side context budgeting, tool result recall, and memory tools."""

from .context import (
    ContextBudget,
    build_scratchpad,
    check_context_budget,
    compress_results,
    estimate_tokens,
    truncate_scratchpad,
)
from .recall import ResultStore
from .tools import ToolRegistry
from .types import CompressedResult, Observation, ToolResult

__all__ = [
    "CompressedResult",
    "ContextBudget",
    "Observation",
    "ResultStore",
    "ToolRegistry",
    "ToolResult",
    "build_scratchpad",
    "check_context_budget",
    "compress_results",
    "estimate_tokens",
    "truncate_scratchpad",
]

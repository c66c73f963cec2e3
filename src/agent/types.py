"""Shared shapes for agent tools and their compressed observations."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolDefinition:
    """Tool definition for LLM tool calling."""

    name: str
    description: str
    input_schema: dict  # JSON Schema


@dataclass
class ToolResult:
    """Outcome of one tool execution."""

    success: bool
    data: Any = None
    error: str | None = None
    metadata: dict = field(default_factory=dict)


def success_result(data: Any, **metadata) -> ToolResult:
    return ToolResult(success=True, data=data, metadata=metadata)


def error_result(message: str, **metadata) -> ToolResult:
    return ToolResult(success=False, error=message, metadata=metadata)


@dataclass
class CompressedResult:
    """Fixed-shape summary of a tool result, cheap to keep in the scratchpad."""

    tool_name: str
    summary: str
    key_points: list[str] = field(default_factory=list)
    tokens: int = 0
    full_data_ref: str | None = None
    failed: bool = False


@dataclass
class Observation:
    """What the agent saw after one reasoning step."""

    summary: str
    error: bool = False
    results: list[CompressedResult] = field(default_factory=list)

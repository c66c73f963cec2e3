"""Context budget management for the agent's working scratchpad.

Tool results are compressed into short summaries, reasoning and observations
are interleaved into a scratchpad, and when the scratchpad outgrows its
allocation the oldest iterations are dropped whole.
"""

import json
import math
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field, model_validator

from .recall import ResultStore
from .types import CompressedResult, Observation, ToolResult

TRUNCATION_MARKER = "[Earlier iterations truncated]\n\n"
_ITERATION_HEADER = re.compile(r"## Iteration \d+")

# CJK Extension A, Unified Ideographs, Compatibility Ideographs
_CJK_RANGES = ((0x3400, 0x4DBF), (0x4E00, 0x9FFF), (0xF900, 0xFAFF))


class ContextBudget(BaseModel):
    """Token allocations for one agent invocation."""

    total: int = Field(default=30000, gt=0)
    system_prompt: int = Field(default=3000, ge=0)
    conversation_history: int = Field(default=10000, ge=0)
    current_message: int = Field(default=2000, ge=0)
    agent_scratchpad: int = Field(default=10000, ge=0)
    response_buffer: int = Field(default=5000, ge=0)

    @model_validator(mode="after")
    def allocations_fit_total(self):
        allocated = (
            self.system_prompt
            + self.conversation_history
            + self.current_message
            + self.agent_scratchpad
            + self.response_buffer
        )
        if allocated > self.total:
            raise ValueError(f"allocations sum to {allocated}, exceeding total {self.total}")
        return self


DEFAULT_BUDGET = ContextBudget()


def _is_cjk(ch: str) -> bool:
    code = ord(ch)
    return any(lo <= code <= hi for lo, hi in _CJK_RANGES)


def estimate_tokens(text: str | None) -> int:
    """~2 CJK chars per token, ~4 other chars per token, rounded up."""
    if not text:
        return 0
    cjk = sum(1 for ch in text if _is_cjk(ch))
    other = len(text) - cjk
    return math.ceil(cjk / 2 + other / 4)


# --- tool result summarizers ---

Summarizer = Callable[[dict], tuple[str, list[str]]]
_SUMMARIZERS: dict[str, Summarizer] = {}


def _mappings(items) -> list[dict]:
    """Dict entries of a list field; anything else is ignored."""
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def summarizer(tool_name: str):
    """Register a summary extractor for a tool's result data."""

    def decorator(fn: Summarizer) -> Summarizer:
        _SUMMARIZERS[tool_name] = fn
        return fn

    return decorator


@summarizer("web_search")
def _summarize_web_search(data: dict) -> tuple[str, list[str]]:
    results = _mappings(data.get("results"))
    if not results:
        return "No search results found", []
    key_points = [f"{r.get('title', '')} ({r.get('link', '')})" for r in results[:5]]
    return f'Found {len(results)} results for "{data.get("query", "")}"', key_points


@summarizer("web_fetch")
def _summarize_web_fetch(data: dict) -> tuple[str, list[str]]:
    extracted = _mappings(data.get("extracted_content") or data.get("extractedContent"))
    if not extracted:
        return "No content extracted", []
    key_points: list[str] = []
    for item in extracted:
        points = item.get("key_points") or item.get("keyPoints")
        info = item.get("extracted_info") or item.get("extractedInfo")
        if isinstance(points, list) and points:
            key_points.extend(str(p) for p in points[:3])
        elif info:
            key_points.append(str(info)[:100] + "...")
    return f"Extracted content from {len(extracted)} page(s)", key_points[:5]


@summarizer("memory_retrieve")
def _summarize_memory_retrieve(data: dict) -> tuple[str, list[str]]:
    facts = _mappings(data.get("facts"))
    if not facts:
        return data.get("message") or "No memories found", []
    key_points = [f"[{f.get('category')}] {f.get('content')}" for f in facts[:5]]
    return f"Retrieved {len(facts)} memory fact(s)", key_points


@summarizer("memory_save")
def _summarize_memory_save(data: dict) -> tuple[str, list[str]]:
    saved = data.get("saved_count") or 0
    key_points = [f"[{f.get('category')}] {f.get('content')}" for f in _mappings(data.get("facts"))]
    return f"Saved {saved} fact(s) to memory", key_points


@summarizer("get_current_time")
def _summarize_current_time(data: dict) -> tuple[str, list[str]]:
    return data.get("datetime") or data.get("iso") or "Time retrieved", []


@summarizer("image_generate")
def _summarize_image(data: dict) -> tuple[str, list[str]]:
    prompt = data.get("original_prompt") or data.get("originalPrompt") or "prompt"
    style = data.get("style")
    return f"Image generated for: {prompt}", [f"Style: {style}"] if style else []


@summarizer("recall_details")
def _summarize_recall(data: dict) -> tuple[str, list[str]]:
    recalled = data.get("data")
    fields = sorted(recalled) if isinstance(recalled, dict) else []
    key_points = [f"Fields: {', '.join(fields)}"] if fields else []
    return f"Recalled details for {data.get('result_id', 'result')}", key_points


def _summarize_unknown(data: Any) -> tuple[str, list[str]]:
    return json.dumps(data, default=str, ensure_ascii=False)[:200], []


def extract_summary(tool_name: str, data: Any) -> tuple[str, list[str]]:
    """Summary and key points for one tool's data, keyed by tool name."""
    if not isinstance(data, dict):
        return str(data), []
    handler = _SUMMARIZERS.get(tool_name)
    if handler is None:
        return _summarize_unknown(data)
    return handler(data)


def compress_results(
    results: list[tuple[str, ToolResult]], result_store: ResultStore | None = None
) -> list[CompressedResult]:
    """Compress (tool_name, result) pairs into fixed-shape summaries.

    When a result store is given, each successful result's full data is kept
    there and its id is reported as ``full_data_ref``.
    """
    compressed = []
    for tool_name, result in results:
        if not result.success:
            error = result.error or "Unknown error"
            compressed.append(
                CompressedResult(
                    tool_name=tool_name,
                    summary=f"Error: {error}",
                    key_points=[],
                    tokens=estimate_tokens(result.error or ""),
                    failed=True,
                )
            )
            continue

        summary, key_points = extract_summary(tool_name, result.data)
        ref = None
        if result_store is not None:
            ref = result_store.put(result.data, prefix=tool_name)
        compressed.append(
            CompressedResult(
                tool_name=tool_name,
                summary=summary,
                key_points=key_points,
                tokens=estimate_tokens(summary + " ".join(key_points)),
                full_data_ref=ref,
            )
        )
    return compressed


def summarize_observation(compressed: list[CompressedResult]) -> Observation:
    """Fold one iteration's compressed results into a single observation."""
    lines = []
    for result in compressed:
        lines.append(f"[{result.tool_name}] {result.summary}")
        lines.extend(f"  - {point}" for point in result.key_points)
        if result.full_data_ref:
            lines.append(f"  (full result id: {result.full_data_ref})")
    return Observation(
        summary="\n".join(lines),
        error=any(r.failed for r in compressed),
        results=compressed,
    )


# --- scratchpad ---


def build_scratchpad(reasoning: list[str], observations: list[Observation]) -> str:
    if not reasoning and not observations:
        return ""

    parts: list[str] = []
    for i, step in enumerate(reasoning):
        parts.append(f"## Iteration {i + 1}")
        parts.append("### Reasoning")
        parts.append(step)
        if i < len(observations) and observations[i] is not None:
            parts.append("### Observation")
            parts.append(observations[i].summary)
            if observations[i].error:
                parts.append("(Some tools encountered errors)")
        parts.append("")
    return "\n".join(parts)


@dataclass
class BudgetCheck:
    within_budget: bool
    usage: dict[str, int] = field(default_factory=dict)
    remaining: int = 0


def check_context_budget(
    system_prompt: str,
    conversation_history: str,
    current_message: str,
    scratchpad: str,
    budget: ContextBudget = DEFAULT_BUDGET,
) -> BudgetCheck:
    usage = {
        "system_prompt": estimate_tokens(system_prompt),
        "conversation_history": estimate_tokens(conversation_history),
        "current_message": estimate_tokens(current_message),
        "agent_scratchpad": estimate_tokens(scratchpad),
    }
    remaining = budget.total - sum(usage.values()) - budget.response_buffer
    return BudgetCheck(within_budget=remaining > 0, usage=usage, remaining=max(0, remaining))


def truncate_scratchpad(scratchpad: str, max_tokens: int) -> str:
    """Keep the most recent whole iterations that fit in max_tokens.

    Returns the input unchanged when it already fits. If not even the latest
    iteration fits, only the truncation marker is returned.
    """
    if estimate_tokens(scratchpad) <= max_tokens:
        return scratchpad

    starts = [m.start() for m in _ITERATION_HEADER.finditer(scratchpad)]
    bounds = starts[1:] + [len(scratchpad)]
    iterations = [scratchpad[s:e] for s, e in zip(starts, bounds)]

    kept: list[str] = []
    tokens = 0
    for iteration in reversed(iterations):
        cost = estimate_tokens(iteration)
        if tokens + cost > max_tokens:
            break
        kept.insert(0, iteration)
        tokens += cost

    return TRUNCATION_MARKER + "".join(kept)

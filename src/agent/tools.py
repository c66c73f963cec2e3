"""Tool registry for the agent: per-user memory tools plus result recall."""

import inspect
import time
from datetime import datetime
from typing import Callable

import structlog

from memory.extractor import CandidateFact
from memory.models import (
    MemoryCategory,
    MemoryFact,
    MemoryTier,
    coerce_category,
    coerce_language,
    coerce_tier,
)

from .context import estimate_tokens
from .types import ToolDefinition, ToolResult, error_result, success_result

logger = structlog.get_logger()

MAX_RETRIEVE_RESULTS = 20
DEFAULT_RETRIEVE_RESULTS = 10
DEFAULT_SAVE_CONFIDENCE = 0.8


def score_fact_relevance(fact: MemoryFact, terms: list[str], now: datetime | None = None) -> float:
    """Keyword relevance of a fact to query terms, with tier/recency/usage bonuses."""
    now = now or datetime.now()
    content = fact.content.lower()
    category = str(getattr(fact.category, "value", fact.category)).lower()

    score = 0.0
    for term in terms:
        if term in content:
            score += 2
        if term in category:
            score += 1

    if fact.tier == MemoryTier.CORE:
        score += 1
    elif fact.tier == MemoryTier.IMPORTANT:
        score += 0.5

    if (now - fact.last_used_at).days < 7:
        score += 0.5
    if fact.use_count > 5:
        score += 0.3
    return score


def _fact_payload(fact: MemoryFact, score: float) -> dict:
    return {
        "id": fact.id,
        "content": fact.content,
        "category": getattr(fact.category, "value", fact.category),
        "tier": getattr(fact.tier, "value", fact.tier),
        "confidence": fact.confidence,
        "use_count": fact.use_count,
        "relevance_score": score,
    }


class ToolRegistry:
    """Registry of tools the agent can call on behalf of one user."""

    def __init__(self, user_id: str, components: dict, conversation_id: str = ""):
        """
        Args:
            user_id: Owner of the memory the tools read and write.
            components: {
                "store": FactStore,
                "pipeline": MemoryPipeline,
                "result_store": ResultStore,
            }
            conversation_id: Provenance recorded on saved facts.
        """
        self.user_id = user_id
        self.components = components
        self.conversation_id = conversation_id
        self._tools: dict[str, tuple[ToolDefinition, Callable]] = {}
        self._register_all()

    def get_definitions(self) -> list[ToolDefinition]:
        return [defn for defn, _ in self._tools.values()]

    async def execute(self, name: str, arguments: dict) -> ToolResult:
        """Run a tool. Unknown tools and handler errors become failed results."""
        if name not in self._tools:
            return error_result(f"Unknown tool: {name}")

        _, handler = self._tools[name]
        start = time.perf_counter()
        try:
            result = handler(arguments or {})
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error("tool_execution_failed", tool=name, error=str(e))
            return error_result(f"{name} failed: {e}")
        result.metadata.setdefault("execution_time", time.perf_counter() - start)
        return result

    def _register(self, name: str, description: str, schema: dict, handler: Callable):
        defn = ToolDefinition(name=name, description=description, input_schema=schema)
        self._tools[name] = (defn, handler)

    def _register_all(self):
        if "store" in self.components:
            self._register_memory_tools()
        if "result_store" in self.components:
            self._register_recall_tools()

    # --- Memory tools ---

    def _register_memory_tools(self):
        store = self.components["store"]
        pipeline = self.components.get("pipeline")

        async def memory_retrieve(args: dict) -> ToolResult:
            query = args.get("query") or ""
            requested = args.get("max_results") or DEFAULT_RETRIEVE_RESULTS
            max_results = min(int(requested), MAX_RETRIEVE_RESULTS)

            memory = await store.get(self.user_id)
            if not memory.facts:
                return success_result(
                    {"facts": [], "total_facts": 0, "message": "No memories found for this user"},
                    tokens_used=0,
                )

            facts = memory.facts
            categories = [c for c in (args.get("categories") or []) if coerce_category(c)]
            if categories:
                facts = [f for f in facts if getattr(f.category, "value", f.category) in categories]

            now = datetime.now()
            terms = query.lower().split()
            scored = sorted(
                ((f, score_fact_relevance(f, terms, now)) for f in facts),
                key=lambda pair: pair[1],
                reverse=True,
            )
            top = [_fact_payload(f, s) for f, s in scored[:max_results] if s > 0]

            if not top and facts:
                fallback = [_fact_payload(f, 0) for f in facts[:max_results]]
                return success_result(
                    {
                        "facts": fallback,
                        "total_facts": len(facts),
                        "query": query,
                        "message": "No specific matches found, returning all available facts",
                    },
                    tokens_used=estimate_tokens(str(fallback)),
                )

            return success_result(
                {
                    "facts": top,
                    "total_facts": len(facts),
                    "returned_count": len(top),
                    "query": query,
                    "language_preference": getattr(
                        memory.language_preference, "value", memory.language_preference
                    ),
                },
                tokens_used=estimate_tokens(str(top)),
            )

        self._register(
            "memory_retrieve",
            "Search the user's saved memory for facts relevant to a query. "
            "Falls back to all facts when nothing matches.",
            {
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "What to look for"},
                    "categories": {
                        "type": "array",
                        "items": {"type": "string", "enum": [c.value for c in MemoryCategory]},
                        "description": "Restrict to these categories",
                    },
                    "max_results": {
                        "type": "integer",
                        "description": "Max facts to return (capped at 20)",
                        "default": DEFAULT_RETRIEVE_RESULTS,
                    },
                },
                "required": ["query"],
            },
            memory_retrieve,
        )

        if pipeline is None:
            return

        async def memory_save(args: dict) -> ToolResult:
            raw_facts = args.get("facts") or []
            if not raw_facts:
                return error_result("No facts provided to save")

            candidates = []
            for raw in raw_facts:
                content = raw.get("content") if isinstance(raw, dict) else None
                if not isinstance(content, str) or not content.strip():
                    logger.warning("memory_save.skipped_empty", fact=str(raw)[:100])
                    continue
                confidence = raw.get("confidence")
                if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
                    confidence = 0
                candidates.append(
                    CandidateFact(
                        content=content.strip(),
                        category=coerce_category(raw.get("category")) or MemoryCategory.PREFERENCE,
                        tier=coerce_tier(raw.get("tier")) or MemoryTier.CONTEXT,
                        confidence=min(max(confidence or DEFAULT_SAVE_CONFIDENCE, 0.0), 1.0),
                    )
                )

            language = coerce_language(args.get("language_preference"))
            added = await pipeline.store_candidates(
                self.user_id, candidates, self.conversation_id, language
            )
            return success_result(
                {
                    "saved_count": added,
                    "submitted_count": len(candidates),
                    "facts": [
                        {
                            "content": c.content,
                            "category": c.category.value,
                            "tier": c.tier.value,
                        }
                        for c in candidates
                    ],
                    "message": f"Saved {added} of {len(candidates)} fact(s) to memory",
                }
            )

        self._register(
            "memory_save",
            "Save important facts about the user for future personalization. "
            "Facts are deduplicated and kept within per-tier limits. "
            "core: name, permanent preferences; important: job, skills; "
            "context: current projects.",
            {
                "type": "object",
                "properties": {
                    "facts": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "content": {"type": "string"},
                                "category": {
                                    "type": "string",
                                    "enum": [c.value for c in MemoryCategory],
                                },
                                "tier": {"type": "string", "enum": [t.value for t in MemoryTier]},
                                "confidence": {"type": "number"},
                            },
                            "required": ["content"],
                        },
                    },
                    "language_preference": {
                        "type": "string",
                        "enum": ["english", "chinese", "hybrid"],
                    },
                },
                "required": ["facts"],
            },
            memory_save,
        )

    # --- Recall ---

    def _register_recall_tools(self):
        result_store = self.components["result_store"]

        def recall_details(args: dict) -> ToolResult:
            result_id = args.get("result_id") or ""
            stored = result_store.get(result_id)
            if stored is None:
                available = ", ".join(result_store.ids()) or "none"
                return error_result(f"Result not found or expired. Available IDs: {available}")

            data = stored.data
            fields = args.get("fields")
            if fields and isinstance(data, dict):
                data = {k: data[k] for k in fields if k in data}

            return success_result(
                {
                    "result_id": result_id,
                    "data": data,
                    "created_at": stored.created_at,
                    "expires_at": stored.expires_at,
                },
                tokens_used=estimate_tokens(str(data)),
            )

        self._register(
            "recall_details",
            "Retrieve the full data behind a compressed tool result, "
            "using the result id from its summary.",
            {
                "type": "object",
                "properties": {
                    "result_id": {"type": "string", "description": "Stored result id"},
                    "fields": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Only return these top-level fields",
                    },
                },
                "required": ["result_id"],
            },
            recall_details,
        )

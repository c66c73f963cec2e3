"""Eviction: expiry removal, per-tier capping, then the global token budget."""

import math
from datetime import datetime

import structlog

from observability import metrics

from .models import MemoryFact, MemoryTier, coerce_tier, estimate_token_usage
from .policy import DEFAULT_POLICY, TierPolicy
from .scoring import sort_by_importance
from .store import FactStore, rebuild_memory

logger = structlog.get_logger()


def remove_expired_facts(facts: list[MemoryFact], now: datetime | None = None) -> list[MemoryFact]:
    now = now or datetime.now()
    return [f for f in facts if f.expires_at is None or f.expires_at > now]


def enforce_tier_limits(
    facts: list[MemoryFact], policy: TierPolicy = DEFAULT_POLICY, now: datetime | None = None
) -> list[MemoryFact]:
    """Keep the top max_facts per tier by importance. Unknown tiers count as context."""
    by_tier: dict[MemoryTier, list[MemoryFact]] = {tier: [] for tier in MemoryTier}
    for fact in facts:
        tier = coerce_tier(fact.tier)
        if tier is None:
            logger.warning("memory.invalid_tier", fact_id=fact.id, tier=str(fact.tier))
            fact.tier = tier = MemoryTier.CONTEXT
        by_tier[tier].append(fact)

    kept: list[MemoryFact] = []
    for tier, tier_facts in by_tier.items():
        limit = policy.limit_for(tier).max_facts
        kept.extend(sort_by_importance(tier_facts, now)[:limit])
    return kept


def enforce_token_budget(
    facts: list[MemoryFact], budget: int, now: datetime | None = None
) -> list[MemoryFact]:
    """Greedy keep by importance while within budget. Core facts are always kept."""
    kept: list[MemoryFact] = []
    tokens = 0
    for fact in sort_by_importance(facts, now):
        fact_tokens = math.ceil(len(fact.content) / 4)
        if fact.tier == MemoryTier.CORE or tokens + fact_tokens <= budget:
            kept.append(fact)
            tokens += fact_tokens
    return kept


def cleanup_facts(
    facts: list[MemoryFact], policy: TierPolicy = DEFAULT_POLICY, now: datetime | None = None
) -> list[MemoryFact]:
    """Run all three eviction phases over a fact list."""
    now = now or datetime.now()
    facts = remove_expired_facts(facts, now)
    facts = enforce_tier_limits(facts, policy, now)
    if estimate_token_usage(facts) > policy.max_total_tokens:
        facts = enforce_token_budget(facts, policy.max_total_tokens, now)
    return facts


class MemoryCleaner:
    """Best-effort maintenance pass over one user's stored memory."""

    def __init__(self, store: FactStore, policy: TierPolicy | None = None):
        self.store = store
        self.policy = policy or store.policy

    async def cleanup(self, user_id: str, timeout: float | None = None) -> int | None:
        """Evict and persist. Returns the number of facts removed, or None on failure.

        Never raises. A failed read or write leaves the stored memory untouched;
        after a timeout the write may or may not have landed.
        """
        removed = {"count": 0}

        def mutate(memory):
            now = datetime.now()
            kept = cleanup_facts(memory.facts, self.policy, now)
            removed["count"] = len(memory.facts) - len(kept)
            return rebuild_memory(memory, kept, last_cleanup=now)

        metrics.counter("memory.cleanup_runs")
        try:
            with metrics.timer("memory.cleanup"):
                await self.store.update(user_id, mutate, timeout=timeout)
        except Exception as e:
            metrics.counter("memory.cleanup_failures")
            logger.warning("memory.cleanup_failed", user_id=user_id, error=str(e))
            return None

        if removed["count"]:
            metrics.counter("memory.facts_evicted", removed["count"])
        logger.info("memory.cleanup_done", user_id=user_id, evicted=removed["count"])
        return removed["count"]

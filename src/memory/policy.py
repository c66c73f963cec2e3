"""Tier policy: capacity and max age per retention tier, plus the token budget."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .models import MemoryTier


@dataclass(frozen=True)
class TierLimit:
    max_facts: int
    max_age_days: int | None  # None = never expires


def _default_tiers() -> dict[MemoryTier, TierLimit]:
    return {
        MemoryTier.CORE: TierLimit(max_facts=8, max_age_days=None),
        MemoryTier.IMPORTANT: TierLimit(max_facts=12, max_age_days=90),
        MemoryTier.CONTEXT: TierLimit(max_facts=6, max_age_days=30),
    }


@dataclass(frozen=True)
class TierPolicy:
    """Static retention table shared by the store, cleanup, and tools."""

    tiers: dict[MemoryTier, TierLimit] = field(default_factory=_default_tiers)
    max_total_tokens: int = 500
    dedup_threshold: float = 0.8
    min_confidence: float = 0.6

    def limit_for(self, tier: MemoryTier) -> TierLimit:
        return self.tiers[tier]

    def calculate_expiry(self, tier: MemoryTier, now: datetime | None = None) -> datetime | None:
        """Expiry timestamp for a fact created now; None for tiers that never expire."""
        if tier == MemoryTier.CORE:
            return None
        days = self.limit_for(tier).max_age_days
        if days is None:
            return None
        return (now or datetime.now()) + timedelta(days=days)

    @classmethod
    def from_config(cls, memory_config) -> "TierPolicy":
        """Build from a cli.config_models.MemoryConfig."""
        tiers = {
            MemoryTier.CORE: TierLimit(memory_config.core.max_facts, None),
            MemoryTier.IMPORTANT: TierLimit(
                memory_config.important.max_facts, memory_config.important.max_age_days
            ),
            MemoryTier.CONTEXT: TierLimit(
                memory_config.context.max_facts, memory_config.context.max_age_days
            ),
        }
        return cls(
            tiers=tiers,
            max_total_tokens=memory_config.max_total_tokens,
            dedup_threshold=memory_config.dedup_threshold,
            min_confidence=memory_config.min_confidence,
        )


DEFAULT_POLICY = TierPolicy()

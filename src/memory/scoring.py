"""Importance scoring for eviction ranking."""

from datetime import datetime

from .models import MemoryFact, days_between

CONFIDENCE_WEIGHT = 40
RECENCY_MAX = 30
RECENCY_DECAY_DIVISOR = 3  # 30 points drain over 90 days
USAGE_POINTS = 3
USAGE_MAX = 30


def calculate_importance_score(fact: MemoryFact, now: datetime | None = None) -> float:
    """Score in roughly [0, 100] from confidence, recency, and usage."""
    now = now or datetime.now()
    confidence_score = fact.confidence * CONFIDENCE_WEIGHT
    age_days = days_between(fact.created_at, now)
    recency_score = max(0.0, RECENCY_MAX - age_days / RECENCY_DECAY_DIVISOR)
    usage_score = min(fact.use_count * USAGE_POINTS, USAGE_MAX)
    return confidence_score + recency_score + usage_score


def sort_by_importance(facts: list[MemoryFact], now: datetime | None = None) -> list[MemoryFact]:
    """New list, highest score first; equal scores keep their input order."""
    now = now or datetime.now()
    return sorted(facts, key=lambda f: calculate_importance_score(f, now), reverse=True)

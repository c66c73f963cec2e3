"""Shared test fixtures for memkeep."""

import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from memory.models import MemoryCategory, MemoryFact, MemoryTier  # noqa: E402
from memory.store import FactStore  # noqa: E402
from observability import metrics  # noqa: E402


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def store(tmp_path):
    """FactStore on a throwaway SQLite file."""
    return FactStore(tmp_path / "memory.db", timeout=5.0)


@pytest.fixture
def make_fact():
    """Factory for MemoryFact with sensible defaults."""
    counter = {"n": 0}

    def _make(
        content=None,
        category=MemoryCategory.PREFERENCE,
        tier=MemoryTier.IMPORTANT,
        confidence=0.9,
        created_at=None,
        last_used_at=None,
        use_count=0,
        expires_at=None,
        id=None,
    ):
        counter["n"] += 1
        created = created_at or datetime.now()
        return MemoryFact(
            id=id or f"fact-{counter['n']}",
            content=content if content is not None else f"Distinct fact number {counter['n']}",
            category=category,
            tier=tier,
            confidence=confidence,
            created_at=created,
            last_used_at=last_used_at or created,
            use_count=use_count,
            expires_at=expires_at,
        )

    return _make

"""Tests for memory data models and serialization."""

from datetime import datetime, timedelta

from memory.models import (
    LanguagePreference,
    MemoryCategory,
    MemoryFact,
    MemoryTier,
    UserMemory,
    coerce_tier,
    days_between,
    estimate_token_usage,
    generate_memory_id,
)


class TestMemoryFact:
    def test_core_fact_never_expires(self):
        fact = MemoryFact(
            id="a",
            content="Name is Ana",
            category="profile",
            tier="core",
            confidence=1.0,
            expires_at=datetime.now() + timedelta(days=5),
        )
        assert fact.tier == MemoryTier.CORE
        assert fact.expires_at is None

    def test_string_enums_coerced(self):
        fact = MemoryFact(id="a", content="x", category="technical", tier="context", confidence=0.7)
        assert fact.category is MemoryCategory.TECHNICAL
        assert fact.tier is MemoryTier.CONTEXT

    def test_unknown_tier_kept_raw(self):
        fact = MemoryFact(id="a", content="x", category="profile", tier="legendary", confidence=0.7)
        assert fact.tier == "legendary"
        assert coerce_tier(fact.tier) is None

    def test_roundtrip(self):
        now = datetime(2026, 1, 2, 3, 4, 5)
        fact = MemoryFact(
            id="a",
            content="Uses Neovim",
            category=MemoryCategory.TECHNICAL,
            tier=MemoryTier.IMPORTANT,
            confidence=0.8,
            created_at=now,
            last_used_at=now,
            use_count=3,
            expires_at=now + timedelta(days=90),
            extracted_from="conv-1",
            auto_extracted=False,
        )
        restored = MemoryFact.from_dict(fact.to_dict())
        assert restored == fact

    def test_from_dict_fills_missing_fields(self):
        fact = MemoryFact.from_dict(
            {
                "id": "old",
                "content": "Likes tea",
                "category": "preference",
                "tier": "context",
                "confidence": 0.7,
                "created_at": "2025-05-01T10:00:00",
            }
        )
        assert fact.use_count == 0
        assert fact.last_used_at == fact.created_at
        assert fact.extracted_from == ""
        assert fact.auto_extracted is True
        assert fact.expires_at is None

    def test_aware_timestamps_become_naive(self):
        fact = MemoryFact.from_dict(
            {
                "id": "z",
                "content": "x",
                "category": "profile",
                "tier": "context",
                "confidence": 0.9,
                "created_at": "2025-05-01T10:00:00Z",
            }
        )
        assert fact.created_at.tzinfo is None


class TestUserMemory:
    def test_empty(self):
        mem = UserMemory.empty("u1")
        assert mem.facts == []
        assert mem.language_preference is None
        assert mem.stats.total_facts == 0

    def test_old_schema_without_language_or_stats(self):
        mem = UserMemory.from_dict(
            "u1",
            {
                "facts": [
                    {"id": "a", "content": "abcd", "category": "profile", "tier": "core",
                     "confidence": 0.9}
                ]
            },
        )
        assert mem.language_preference is None
        assert mem.stats.total_facts == 1
        assert mem.stats.token_usage == 1

    def test_bad_language_dropped(self):
        mem = UserMemory.from_dict("u1", {"facts": [], "language_preference": "klingon"})
        assert mem.language_preference is None

    def test_roundtrip_language(self):
        mem = UserMemory(user_id="u1", language_preference=LanguagePreference.HYBRID)
        restored = UserMemory.from_dict("u1", mem.to_dict())
        assert restored.language_preference is LanguagePreference.HYBRID

    def test_non_dict_fact_records_skipped(self):
        mem = UserMemory.from_dict("u1", {"facts": ["junk", None]})
        assert mem.facts == []


class TestHelpers:
    def test_token_usage_rounds_up(self, make_fact):
        facts = [make_fact(content="abcde"), make_fact(content="abc")]
        assert estimate_token_usage(facts) == 2

    def test_token_usage_empty(self):
        assert estimate_token_usage([]) == 0

    def test_days_between_rounds_up_and_ignores_order(self):
        a = datetime(2026, 1, 1)
        b = a + timedelta(days=2, hours=1)
        assert days_between(a, b) == 3
        assert days_between(b, a) == 3
        assert days_between(a, a) == 0

    def test_memory_ids_unique(self):
        assert generate_memory_id() != generate_memory_id()

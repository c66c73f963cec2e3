"""Data models for per-user retained memory."""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger()


class MemoryTier(str, Enum):
    CORE = "core"  # permanent profile info
    IMPORTANT = "important"  # key preferences
    CONTEXT = "context"  # recent work/topics


class MemoryCategory(str, Enum):
    PROFILE = "profile"
    PREFERENCE = "preference"
    TECHNICAL = "technical"
    PROJECT = "project"


class LanguagePreference(str, Enum):
    ENGLISH = "english"
    CHINESE = "chinese"
    HYBRID = "hybrid"


VALID_TIERS = {t.value for t in MemoryTier}
VALID_CATEGORIES = {c.value for c in MemoryCategory}
VALID_LANGUAGES = {lang.value for lang in LanguagePreference}


def coerce_tier(value) -> MemoryTier | None:
    """Return the MemoryTier for value, or None if it is not a known tier."""
    if isinstance(value, MemoryTier):
        return value
    if isinstance(value, str) and value in VALID_TIERS:
        return MemoryTier(value)
    return None


def coerce_category(value) -> MemoryCategory | None:
    if isinstance(value, MemoryCategory):
        return value
    if isinstance(value, str) and value in VALID_CATEGORIES:
        return MemoryCategory(value)
    return None


def coerce_language(value) -> LanguagePreference | None:
    if isinstance(value, LanguagePreference):
        return value
    if isinstance(value, str) and value in VALID_LANGUAGES:
        return LanguagePreference(value)
    return None


def _enum_value(value) -> Any:
    return value.value if isinstance(value, Enum) else value


def _parse_dt(value, default: datetime | None) -> datetime | None:
    """Parse an ISO timestamp, normalizing aware values to naive local time."""
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.warning("memory.bad_timestamp", value=str(value)[:40])
            return default
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


@dataclass
class MemoryFact:
    """A single retained statement about a user.

    ``tier`` and ``category`` hold the raw stored value when it is not a
    recognized enum member, so that cleanup can coerce it with a warning
    instead of the whole document failing to load.
    """

    id: str
    content: str
    category: MemoryCategory | str
    tier: MemoryTier | str
    confidence: float
    created_at: datetime = field(default_factory=datetime.now)
    last_used_at: datetime = field(default_factory=datetime.now)
    use_count: int = 0
    expires_at: datetime | None = None
    extracted_from: str = ""
    auto_extracted: bool = True

    def __post_init__(self):
        self.tier = coerce_tier(self.tier) or self.tier
        self.category = coerce_category(self.category) or self.category
        if self.tier == MemoryTier.CORE:
            self.expires_at = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "category": _enum_value(self.category),
            "tier": _enum_value(self.tier),
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat(),
            "last_used_at": self.last_used_at.isoformat(),
            "use_count": self.use_count,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "extracted_from": self.extracted_from,
            "auto_extracted": self.auto_extracted,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MemoryFact":
        now = datetime.now()
        created = _parse_dt(data.get("created_at"), now)
        return cls(
            id=str(data.get("id") or generate_memory_id()),
            content=str(data.get("content", "")),
            category=data.get("category", ""),
            tier=data.get("tier", ""),
            confidence=float(data.get("confidence", 0.0) or 0.0),
            created_at=created,
            last_used_at=_parse_dt(data.get("last_used_at"), created),
            use_count=int(data.get("use_count", 0) or 0),
            expires_at=_parse_dt(data.get("expires_at"), None),
            extracted_from=str(data.get("extracted_from", "") or ""),
            auto_extracted=bool(data.get("auto_extracted", True)),
        )


@dataclass
class MemoryStats:
    total_facts: int = 0
    token_usage: int = 0
    last_cleanup: datetime = field(default_factory=datetime.now)


@dataclass
class UserMemory:
    """Aggregate root: every retained fact for one user."""

    user_id: str
    facts: list[MemoryFact] = field(default_factory=list)
    language_preference: LanguagePreference | None = None
    stats: MemoryStats = field(default_factory=MemoryStats)
    updated_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def empty(cls, user_id: str) -> "UserMemory":
        return cls(user_id=user_id)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "facts": [f.to_dict() for f in self.facts],
            "language_preference": _enum_value(self.language_preference),
            "stats": {
                "total_facts": self.stats.total_facts,
                "token_usage": self.stats.token_usage,
                "last_cleanup": self.stats.last_cleanup.isoformat(),
            },
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, user_id: str, data: dict) -> "UserMemory":
        """Build from a stored document, tolerating older schemas."""
        now = datetime.now()
        facts = []
        for raw in data.get("facts") or []:
            if not isinstance(raw, dict):
                logger.warning("memory.bad_fact_record", user_id=user_id)
                continue
            try:
                facts.append(MemoryFact.from_dict(raw))
            except (ValueError, TypeError) as e:
                logger.warning(
                    "memory.bad_fact_record", user_id=user_id, fact_id=raw.get("id"), error=str(e)
                )

        # Stored counts may include records skipped above
        raw_stats = data.get("stats")
        stats = MemoryStats(
            total_facts=len(facts),
            token_usage=estimate_token_usage(facts),
            last_cleanup=_parse_dt(
                raw_stats.get("last_cleanup") if isinstance(raw_stats, dict) else None, now
            ),
        )

        language = data.get("language_preference")
        preference = coerce_language(language)
        if language and preference is None:
            logger.warning("memory.bad_language_preference", user_id=user_id, value=language)

        return cls(
            user_id=user_id,
            facts=facts,
            language_preference=preference,
            stats=stats,
            updated_at=_parse_dt(data.get("updated_at"), now),
        )


def estimate_token_usage(facts: list[MemoryFact]) -> int:
    """Rough token estimate for stored facts: ~4 characters per token."""
    total_chars = sum(len(f.content) for f in facts)
    return math.ceil(total_chars / 4)


def days_between(a: datetime, b: datetime) -> int:
    """Whole days between two timestamps, rounded up, order-insensitive."""
    seconds = abs((b - a).total_seconds())
    return math.ceil(seconds / 86400)


def generate_memory_id() -> str:
    return str(uuid.uuid4())

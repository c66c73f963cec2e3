"""Render stored memory into a prompt context block."""

import structlog

from .models import (
    LanguagePreference,
    MemoryCategory,
    MemoryFact,
    MemoryTier,
    UserMemory,
    coerce_category,
    coerce_tier,
)
from .store import FactStore

logger = structlog.get_logger()

LANGUAGE_INSTRUCTIONS = {
    LanguagePreference.ENGLISH: (
        "**Language Preference:** User prefers English. Respond in English.\n\n"
    ),
    LanguagePreference.CHINESE: (
        "**Language Preference:** User prefers Chinese (中文). Respond in Chinese.\n\n"
    ),
    LanguagePreference.HYBRID: (
        "**Language Preference:** User is comfortable with both English and Chinese. "
        "You may use either language or mix them as appropriate.\n\n"
    ),
}

SECTION_TITLES = {
    MemoryCategory.PROFILE: "About the user",
    MemoryCategory.PREFERENCE: "Preferences",
    MemoryCategory.TECHNICAL: "Technical Context",
    MemoryCategory.PROJECT: "Current Work",
}

TIER_ORDER = {MemoryTier.CORE: 0, MemoryTier.IMPORTANT: 1, MemoryTier.CONTEXT: 2}

MEMORY_HEADER = "## User Memory\n\n"
USAGE_INSTRUCTION = (
    "Use this information to personalize responses, "
    "but don't constantly reference it unless relevant.\n"
)


def _tier_rank(fact: MemoryFact) -> int:
    return TIER_ORDER.get(coerce_tier(fact.tier), len(TIER_ORDER) - 1)


def format_memory_context(memory: UserMemory) -> tuple[str, list[str]]:
    """Build the context block for a memory.

    Returns:
        (text, ids of the facts rendered). Text is "" when there is
        nothing to say.
    """
    language = LANGUAGE_INSTRUCTIONS.get(memory.language_preference, "")

    if not memory.facts:
        return (MEMORY_HEADER + language if language else ""), []

    sections: dict[MemoryCategory, list[MemoryFact]] = {c: [] for c in SECTION_TITLES}
    for fact in sorted(memory.facts, key=_tier_rank):
        category = coerce_category(fact.category)
        if category is None:
            logger.warning("memory.unknown_category", fact_id=fact.id, category=str(fact.category))
            continue
        sections[category].append(fact)

    parts = [MEMORY_HEADER, language]
    used_ids: list[str] = []
    for category, title in SECTION_TITLES.items():
        facts = sections[category]
        if not facts:
            continue
        lines = "\n".join(f"- {f.content}" for f in facts)
        parts.append(f"**{title}:**\n{lines}\n\n")
        used_ids.extend(f.id for f in facts)
    parts.append(USAGE_INSTRUCTION)
    return "".join(parts), used_ids


class MemoryLoader:
    """Reads a user's memory for a chat turn and records which facts were shown."""

    def __init__(self, store: FactStore):
        self.store = store

    async def load_for_context(self, user_id: str, timeout: float | None = None) -> str:
        memory = await self.store.get(user_id, timeout=timeout)
        text, used_ids = format_memory_context(memory)
        if used_ids:
            await self.store.mark_used(user_id, used_ids, timeout=timeout)
            logger.debug("memory.context_loaded", user_id=user_id, facts=len(used_ids))
        return text

"""Memory pipeline: validate -> add (dedup) -> cleanup, sequentially per request."""

import asyncio

import structlog

from .cleanup import MemoryCleaner
from .extractor import (
    CandidateFact,
    FactExtractor,
    build_fact,
    has_memory_trigger_keywords,
    should_extract_memory,
    validate_candidate,
)
from .models import LanguagePreference
from .store import FactStore

logger = structlog.get_logger()


class MemoryPipeline:
    """Orchestrates the write path for one user at a time.

    ``add_facts`` and ``cleanup`` are awaited one after the other, so a
    single request never races itself on the user's document.
    """

    def __init__(
        self,
        store: FactStore,
        cleaner: MemoryCleaner | None = None,
        extractor: FactExtractor | None = None,
    ):
        self.store = store
        self.cleaner = cleaner or MemoryCleaner(store)
        self.extractor = extractor

    async def store_candidates(
        self,
        user_id: str,
        candidates: list[CandidateFact],
        conversation_id: str = "",
        language_preference: LanguagePreference | None = None,
        auto_extracted: bool = True,
    ) -> int:
        """Add already-validated candidates, then clean up. Store errors propagate."""
        if not candidates and language_preference is None:
            return 0

        policy = self.store.policy
        facts = [build_fact(c, conversation_id, auto_extracted, policy=policy) for c in candidates]
        added = await self.store.add_facts(user_id, facts, language_preference)
        if added:
            await self.cleaner.cleanup(user_id)
        return added

    async def remember(
        self,
        user_id: str,
        raw_candidates: list[dict],
        conversation_id: str = "",
        language_preference: LanguagePreference | None = None,
        auto_extracted: bool = True,
    ) -> int:
        """Validate raw candidate dicts and store the survivors. Never raises."""
        min_confidence = self.store.policy.min_confidence
        candidates = [
            c for c in (validate_candidate(raw, min_confidence) for raw in raw_candidates) if c
        ]
        try:
            added = await self.store_candidates(
                user_id, candidates, conversation_id, language_preference, auto_extracted
            )
        except Exception as e:
            logger.warning("memory.remember_failed", user_id=user_id, error=str(e))
            return 0

        logger.info(
            "memory.remembered",
            user_id=user_id,
            conversation_id=conversation_id,
            candidates=len(raw_candidates),
            valid=len(candidates),
            added=added,
        )
        return added

    async def process_conversation(
        self,
        user_id: str,
        conversation_id: str,
        messages: list[dict],
        duration_seconds: float,
        last_user_message: str | None = None,
    ) -> int:
        """Extract facts from a finished chat turn when the trigger policy allows it."""
        if self.extractor is None:
            return 0

        keyword_trigger = has_memory_trigger_keywords(last_user_message or "")
        if keyword_trigger:
            logger.debug("memory.keyword_trigger", conversation_id=conversation_id)
        if not should_extract_memory(len(messages), duration_seconds, keyword_trigger):
            return 0

        result = await asyncio.to_thread(self.extractor.extract, messages, conversation_id)
        if not result.facts and result.language_preference is None:
            return 0

        try:
            added = await self.store_candidates(
                user_id, result.facts, conversation_id, result.language_preference
            )
        except Exception as e:
            logger.warning(
                "memory.conversation_failed",
                user_id=user_id,
                conversation_id=conversation_id,
                error=str(e),
            )
            return 0

        logger.info(
            "memory.conversation_processed",
            user_id=user_id,
            conversation_id=conversation_id,
            extracted=len(result.facts),
            added=added,
            language_preference=getattr(result.language_preference, "value", None),
        )
        return added

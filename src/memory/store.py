"""Persistent per-user memory documents in SQLite with optimistic concurrency.

Each user owns one JSON document (the serialized UserMemory) plus a
monotonically increasing ``version``. Read-modify-write operations re-read
and retry when the version moved underneath them, so two requests touching
the same user can't silently drop each other's update.
"""

import asyncio
import json
import sqlite3
from collections import Counter
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import structlog

from cli.retry import conflict_retry
from db import wal_session
from observability import metrics

from .dedup import filter_duplicates
from .errors import MemoryStoreError, StoreTimeoutError, WriteConflictError
from .models import (
    LanguagePreference,
    MemoryFact,
    MemoryStats,
    UserMemory,
    estimate_token_usage,
)
from .policy import DEFAULT_POLICY, TierPolicy

logger = structlog.get_logger()

# Distinguishes "argument omitted" from an explicit None.
_UNSET = object()

# SQLite lock waits give up well before the per-call timeout fires
BUSY_TIMEOUT_FRACTION = 0.5

Mutator = Callable[[UserMemory], UserMemory | None]


def rebuild_memory(
    memory: UserMemory,
    facts: list[MemoryFact],
    language_preference=_UNSET,
    last_cleanup: datetime | None = None,
) -> UserMemory:
    """New UserMemory with facts replaced and stats recomputed."""
    now = datetime.now()
    preference = (
        memory.language_preference if language_preference is _UNSET else language_preference
    )
    return UserMemory(
        user_id=memory.user_id,
        facts=list(facts),
        language_preference=preference,
        stats=MemoryStats(
            total_facts=len(facts),
            token_usage=estimate_token_usage(facts),
            last_cleanup=last_cleanup or memory.stats.last_cleanup,
        ),
        updated_at=now,
    )


class FactStore:
    """Async facade over the SQLite document table."""

    def __init__(
        self,
        db_path: str | Path,
        policy: TierPolicy = DEFAULT_POLICY,
        timeout: float = 10.0,
        max_write_attempts: int = 5,
    ):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.policy = policy
        self.timeout = timeout
        self.busy_timeout = timeout * BUSY_TIMEOUT_FRACTION
        self.max_write_attempts = max_write_attempts
        self._init_db()

    def _init_db(self):
        with wal_session(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_memory (
                    user_id TEXT PRIMARY KEY,
                    document TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

    # --- blocking helpers, run in a worker thread ---

    def _read(self, user_id: str) -> tuple[UserMemory, int]:
        with wal_session(self.db_path, timeout=self.busy_timeout) as conn:
            row = conn.execute(
                "SELECT document, version FROM user_memory WHERE user_id = ?", (user_id,)
            ).fetchone()
        if row is None:
            return UserMemory.empty(user_id), 0
        document, version = row
        try:
            data = json.loads(document)
        except json.JSONDecodeError as e:
            raise MemoryStoreError(f"Corrupt memory document for {user_id}: {e}") from e
        if not isinstance(data, dict):
            raise MemoryStoreError(f"Corrupt memory document for {user_id}: not an object")
        return UserMemory.from_dict(user_id, data), version

    def _write(self, memory: UserMemory, expected_version: int) -> None:
        document = json.dumps(memory.to_dict(), ensure_ascii=False)
        updated = memory.updated_at.isoformat()
        with wal_session(self.db_path, timeout=self.busy_timeout) as conn:
            if expected_version == 0:
                cursor = conn.execute(
                    """INSERT INTO user_memory (user_id, document, version, updated_at)
                       VALUES (?, ?, 1, ?)
                       ON CONFLICT(user_id) DO NOTHING""",
                    (memory.user_id, document, updated),
                )
            else:
                cursor = conn.execute(
                    """UPDATE user_memory
                       SET document = ?, version = version + 1, updated_at = ?
                       WHERE user_id = ? AND version = ?""",
                    (document, updated, memory.user_id, expected_version),
                )
            if cursor.rowcount == 0:
                raise WriteConflictError(
                    f"Memory for {memory.user_id} changed since version {expected_version}"
                )

    async def _run(self, fn, *args, timeout: float | None = None):
        """Run blocking store work off the event loop, bounded by a timeout.

        The worker thread cannot be cancelled: a write that times out may still
        commit afterwards, so StoreTimeoutError means "outcome unknown".
        """
        limit = self.timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), limit)
        except asyncio.TimeoutError as e:
            raise StoreTimeoutError(f"Memory store call exceeded {limit}s") from e
        except MemoryStoreError:
            raise
        except (sqlite3.Error, ValueError, TypeError) as e:
            raise MemoryStoreError(str(e)) from e

    # --- public API ---

    async def get(self, user_id: str, timeout: float | None = None) -> UserMemory:
        """Return the user's memory; an empty aggregate if none stored yet."""
        memory, _ = await self._run(self._read, user_id, timeout=timeout)
        return memory

    async def update(
        self, user_id: str, mutate: Mutator, timeout: float | None = None
    ) -> UserMemory:
        """Compare-and-swap read-modify-write.

        ``mutate`` receives the current memory and returns the replacement,
        or None to skip the write. It may run more than once if another
        writer wins the race, so it must not have side effects.
        """

        async def attempt() -> UserMemory:
            memory, version = await self._run(self._read, user_id, timeout=timeout)
            updated = mutate(memory)
            if updated is None:
                return memory
            await self._run(self._write, updated, version, timeout=timeout)
            return updated

        retrying = conflict_retry(
            max_attempts=self.max_write_attempts, exceptions=(WriteConflictError,)
        )
        return await retrying(attempt)()

    async def save(
        self,
        user_id: str,
        facts: list[MemoryFact],
        language_preference=_UNSET,
        timeout: float | None = None,
    ) -> UserMemory:
        """Replace the user's facts. Omitting language_preference keeps the stored one."""
        return await self.update(
            user_id,
            lambda memory: rebuild_memory(memory, facts, language_preference),
            timeout=timeout,
        )

    async def add_facts(
        self,
        user_id: str,
        candidates: list[MemoryFact],
        language_preference: LanguagePreference | None = None,
        timeout: float | None = None,
    ) -> int:
        """Append the non-duplicate candidates. Returns how many were added."""
        outcome = {"added": 0, "dropped": 0}

        def mutate(memory: UserMemory) -> UserMemory | None:
            unique = filter_duplicates(memory.facts, candidates, self.policy.dedup_threshold)
            outcome["added"] = len(unique)
            outcome["dropped"] = len(candidates) - len(unique)
            if not unique and language_preference is None:
                return None
            preference = language_preference or memory.language_preference
            return rebuild_memory(memory, memory.facts + unique, preference)

        await self.update(user_id, mutate, timeout=timeout)

        if outcome["dropped"]:
            metrics.counter("memory.duplicates_dropped", outcome["dropped"])
        if outcome["added"]:
            metrics.counter("memory.facts_added", outcome["added"])
        if not outcome["added"]:
            logger.info("memory.all_duplicates", user_id=user_id, candidates=len(candidates))
        else:
            logger.info(
                "memory.facts_added",
                user_id=user_id,
                added=outcome["added"],
                duplicates=outcome["dropped"],
            )
        return outcome["added"]

    async def mark_used(
        self, user_id: str, fact_ids: list[str], timeout: float | None = None
    ) -> None:
        """Increment use_count and refresh last_used_at for the named facts."""
        wanted = set(fact_ids)
        if not wanted:
            return

        def mutate(memory: UserMemory) -> UserMemory | None:
            now = datetime.now()
            touched = False
            facts = []
            for fact in memory.facts:
                if fact.id in wanted:
                    fact.use_count += 1
                    fact.last_used_at = now
                    touched = True
                facts.append(fact)
            return rebuild_memory(memory, facts) if touched else None

        await self.update(user_id, mutate, timeout=timeout)

    async def delete(self, user_id: str, fact_id: str, timeout: float | None = None) -> bool:
        """Remove one fact. Returns False if it wasn't stored."""
        found = {"value": False}

        def mutate(memory: UserMemory) -> UserMemory | None:
            remaining = [f for f in memory.facts if f.id != fact_id]
            found["value"] = len(remaining) != len(memory.facts)
            return rebuild_memory(memory, remaining) if found["value"] else None

        await self.update(user_id, mutate, timeout=timeout)
        return found["value"]

    async def clear(self, user_id: str, timeout: float | None = None) -> int:
        """Drop every fact (language preference is kept). Returns count removed."""
        removed = {"count": 0}

        def mutate(memory: UserMemory) -> UserMemory:
            removed["count"] = len(memory.facts)
            return rebuild_memory(memory, [], last_cleanup=datetime.now())

        await self.update(user_id, mutate, timeout=timeout)
        logger.info("memory.cleared", user_id=user_id, removed=removed["count"])
        return removed["count"]

    async def get_stats(self, user_id: str, timeout: float | None = None) -> dict:
        """Fact counts by tier and category plus token usage."""
        memory = await self.get(user_id, timeout=timeout)
        by_tier = Counter(getattr(f.tier, "value", f.tier) for f in memory.facts)
        by_category = Counter(getattr(f.category, "value", f.category) for f in memory.facts)
        return {
            "total_facts": len(memory.facts),
            "token_usage": estimate_token_usage(memory.facts),
            "by_tier": dict(by_tier),
            "by_category": dict(by_category),
            "language_preference": getattr(
                memory.language_preference, "value", memory.language_preference
            ),
            "last_cleanup": memory.stats.last_cleanup.isoformat(),
        }

"""User memory retention engine: store, dedup, scoring, eviction, and rendering."""

from .cleanup import MemoryCleaner
from .errors import MemoryStoreError, StoreTimeoutError, WriteConflictError
from .loader import MemoryLoader
from .models import LanguagePreference, MemoryCategory, MemoryFact, MemoryTier, UserMemory
from .pipeline import MemoryPipeline
from .policy import DEFAULT_POLICY, TierLimit, TierPolicy
from .store import FactStore

__all__ = [
    "DEFAULT_POLICY",
    "FactStore",
    "LanguagePreference",
    "MemoryCategory",
    "MemoryCleaner",
    "MemoryFact",
    "MemoryLoader",
    "MemoryPipeline",
    "MemoryStoreError",
    "MemoryTier",
    "StoreTimeoutError",
    "TierLimit",
    "TierPolicy",
    "UserMemory",
    "WriteConflictError",
]

"""Errors raised by the fact store."""


class MemoryStoreError(Exception):
    """Persistence failure reading or writing a user's memory document."""


class StoreTimeoutError(MemoryStoreError):
    """A store call did not finish within its timeout."""


class WriteConflictError(MemoryStoreError):
    """Another writer updated the document between our read and write."""

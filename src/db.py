"""Shared SQLite helpers: WAL mode, busy timeout, row_factory defaults."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path


def wal_connect(
    db_path: str | Path, row_factory: bool = False, timeout: float = 5.0
) -> sqlite3.Connection:
    """Open SQLite connection with WAL journal mode.

    Args:
        db_path: Path to database file.
        row_factory: If True, set conn.row_factory = sqlite3.Row.
        timeout: Seconds to wait on a locked database before raising.
    """
    conn = sqlite3.connect(str(db_path), timeout=timeout, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={int(timeout * 1000)}")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def wal_session(db_path: str | Path, row_factory: bool = False, timeout: float = 5.0):
    """Single transaction on a fresh WAL connection, closed on exit."""
    conn = wal_connect(db_path, row_factory=row_factory, timeout=timeout)
    try:
        with conn:
            yield conn
    finally:
        conn.close()

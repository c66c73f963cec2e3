"""In-process TTL store for full tool results the agent may recall later."""

import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable

import structlog
from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = structlog.get_logger().bind(source="recall")

SWEEP_JOB_ID = "recall_sweep"


@dataclass
class StoredResult:
    id: str
    data: Any
    created_at: float
    expires_at: float


class ResultStore:
    """Thread-safe map of result id -> StoredResult with TTL expiry.

    Create one per process, call ``start()`` to schedule the periodic sweep,
    and ``stop()`` on shutdown. Expired entries are also dropped lazily on read.
    """

    def __init__(
        self,
        ttl_minutes: float = 30,
        sweep_interval_minutes: float = 5,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_minutes * 60
        self.sweep_interval_minutes = sweep_interval_minutes
        self._clock = clock
        self._lock = threading.Lock()
        self._results: dict[str, StoredResult] = {}
        self.scheduler: BackgroundScheduler | None = None

    def put(self, data: Any, prefix: str = "result", result_id: str | None = None) -> str:
        """Store data and return its id."""
        result_id = result_id or f"{prefix}_{uuid.uuid4().hex[:12]}"
        now = self._clock()
        with self._lock:
            self._results[result_id] = StoredResult(
                id=result_id, data=data, created_at=now, expires_at=now + self.ttl_seconds
            )
        return result_id

    def get(self, result_id: str) -> StoredResult | None:
        """Return the stored result, or None if missing or expired."""
        with self._lock:
            stored = self._results.get(result_id)
            if stored is None:
                return None
            if stored.expires_at < self._clock():
                del self._results[result_id]
                return None
            return stored

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._results)

    def sweep_expired(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [rid for rid, r in self._results.items() if r.expires_at < now]
            for rid in expired:
                del self._results[rid]
        if expired:
            logger.debug("recall.swept", removed=len(expired))
        return len(expired)

    def clear(self):
        with self._lock:
            self._results.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    # --- background sweep ---

    def _on_job_error(self, event):
        logger.error("recall.sweep_failed", job_id=event.job_id, exception=str(event.exception))

    def start(self):
        """Schedule the periodic sweep on a background thread."""
        if self.scheduler is not None:
            return
        self.scheduler = BackgroundScheduler()
        self.scheduler.add_job(
            self.sweep_expired,
            trigger=IntervalTrigger(minutes=self.sweep_interval_minutes),
            id=SWEEP_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self.scheduler.start()
        logger.info("recall.sweep_scheduled", interval_minutes=self.sweep_interval_minutes)

    def stop(self):
        """Stop the sweep scheduler."""
        if self.scheduler is None:
            return
        self.scheduler.shutdown(wait=False)
        self.scheduler = None

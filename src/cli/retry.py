"""Retry utilities for store writes that lose an optimistic-concurrency race."""

import logging

import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

logger = structlog.stdlib.get_logger(__name__)


def conflict_retry(
    max_attempts: int = 5,
    max_wait: float = 0.2,
    exceptions: tuple = (Exception,),
):
    """Retry decorator for read-modify-write cycles.

    Uses short jittered waits so two writers racing on the same document
    don't retry in lockstep.

    Args:
        max_attempts: Max attempts including the first one
        max_wait: Max wait between attempts (seconds)
        exceptions: Exception types that mean "re-read and try again"
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_random_exponential(multiplier=0.01, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        reraise=True,
    )

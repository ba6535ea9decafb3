# Overview: Retry helpers for persistence operations that may fail transiently.

from __future__ import annotations

import logging
import time

from ..errors import PersistenceError

logger = logging.getLogger(__name__)


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on: tuple = (PersistenceError,),
    sleep=time.sleep,
    on_retry=None,
):
    """
    Execute an operation with retry on transient failures.

    Sleeps backoff_base * 2**attempt between attempts and re-raises the
    last failure once attempts are exhausted. on_retry(exc) runs before each
    retry (e.g., to roll back a database session).
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after failure (attempt %d/%d): %s", attempt + 1, attempts, exc)
            if on_retry is not None:
                on_retry(exc)
            if backoff_base > 0:
                sleep(backoff_base * (2 ** attempt))

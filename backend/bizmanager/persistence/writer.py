# Overview: Ordered write-behind queue between the business store and its port.

"""
Writer Invariants (authoritative)

- One FIFO queue per store. Operations leave the queue only after the port
  acknowledged them, so a later write for an entity never reaches durable
  storage before an earlier one.
- A failing operation is retried with exponential backoff by flush() and
  the background worker. kick() in sync mode makes a single attempt with no
  sleep, so a mutation never waits out a backoff cycle. Whatever still
  fails stays at the head of the queue, the failure is logged and handed
  to failure listeners, and the next drain starts from it again.
- Nothing here touches the store's in-memory state; failures never roll
  back a mutation.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass

from ..errors import PersistenceError
from ..services.concurrency import run_with_retry
from .base import PersistencePort

logger = logging.getLogger(__name__)

OP_UPSERT = "upsert"
OP_DELETE = "delete"

MODE_SYNC = "sync"
MODE_BACKGROUND = "background"

VALID_WRITER_MODES = [MODE_SYNC, MODE_BACKGROUND]


@dataclass(frozen=True)
class WriteOperation:
    op: str
    entity_type: str
    entity_id: str
    record: dict | None = None


class PersistenceWriter:
    def __init__(
        self,
        port: PersistencePort,
        *,
        scope: str,
        origin: str,
        mode: str = MODE_SYNC,
        attempts: int = 3,
        backoff_base: float = 0.1,
        sleep=None,
    ):
        if mode not in VALID_WRITER_MODES:
            raise ValueError(f"Invalid writer mode: {mode}. Must be one of {VALID_WRITER_MODES}")
        self.port = port
        self.scope = scope
        self.origin = origin
        self.mode = mode
        self.attempts = attempts
        self.backoff_base = backoff_base
        self._sleep = sleep
        self._queue: deque[WriteOperation] = deque()
        self._queue_lock = threading.Lock()
        self._drain_lock = threading.Lock()
        self._wakeup = threading.Event()
        self._stopped = False
        self._failure_listeners = []
        self.last_error: PersistenceError | None = None
        self._worker: threading.Thread | None = None
        if mode == MODE_BACKGROUND:
            self._worker = threading.Thread(target=self._run_worker, name="bizmanager-writer", daemon=True)
            self._worker.start()

    @property
    def pending_count(self) -> int:
        with self._queue_lock:
            return len(self._queue)

    def add_failure_listener(self, callback) -> None:
        self._failure_listeners.append(callback)

    def enqueue(self, operation: WriteOperation) -> None:
        with self._queue_lock:
            self._queue.append(operation)
        self._wakeup.set()

    def kick(self) -> None:
        """Drain now (sync mode) or wake the worker (background mode)."""
        if self.mode == MODE_SYNC:
            self.flush(attempts=1)
        else:
            self._wakeup.set()

    def flush(self, *, attempts: int | None = None) -> bool:
        """
        Drain the queue in order. Returns True when everything was written,
        False when an operation is still failing after its retries.

        attempts overrides the configured retry count for this drain.
        """
        with self._drain_lock:
            while True:
                with self._queue_lock:
                    if not self._queue:
                        self.last_error = None
                        return True
                    operation = self._queue[0]
                try:
                    self._apply_with_retry(operation, attempts or self.attempts)
                except PersistenceError as exc:
                    exc.operation = operation
                    self.last_error = exc
                    logger.error(
                        "Write of %s %s failed; %d write(s) pending: %s",
                        operation.entity_type,
                        operation.entity_id,
                        self.pending_count,
                        exc,
                    )
                    self._notify_failure(exc, operation)
                    return False
                with self._queue_lock:
                    self._queue.popleft()

    def _apply(self, operation: WriteOperation) -> None:
        if operation.op == OP_UPSERT:
            self.port.upsert(self.scope, operation.entity_type, operation.record, origin=self.origin)
        else:
            self.port.delete(self.scope, operation.entity_type, operation.entity_id, origin=self.origin)

    def _apply_with_retry(self, operation: WriteOperation, attempts: int) -> None:
        kwargs = {"attempts": attempts, "backoff_base": self.backoff_base}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        run_with_retry(lambda: self._apply(operation), **kwargs)

    def _notify_failure(self, exc: PersistenceError, operation: WriteOperation) -> None:
        for callback in list(self._failure_listeners):
            try:
                callback(exc, operation)
            except Exception:
                logger.exception("Persistence failure listener raised")

    def _run_worker(self) -> None:
        while not self._stopped:
            self._wakeup.wait(timeout=max(self.backoff_base, 0.05) * 10)
            self._wakeup.clear()
            if self._stopped:
                break
            self.flush()

    def close(self, *, drain: bool = True) -> None:
        self._stopped = True
        self._wakeup.set()
        if self._worker is not None:
            self._worker.join(timeout=5)
        if drain:
            self.flush()

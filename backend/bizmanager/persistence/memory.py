# Overview: In-process persistence port; several ports may share one backend.

from __future__ import annotations

import copy
import logging
import threading
from typing import Callable

from ..errors import PersistenceError
from .base import (
    ChangeNotification,
    PersistencePort,
    Subscription,
    EVENT_DELETE,
    EVENT_INSERT,
    EVENT_UPDATE,
    empty_snapshot,
)

logger = logging.getLogger(__name__)


class MemoryBackend:
    """
    Shared in-memory "database".

    Each MemoryPersistencePort bound to the same backend behaves like a
    separate device connected to one hosted store: writes from one port are
    broadcast to the subscribers of every port in the same scope.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._data: dict[str, dict[str, dict[str, dict]]] = {}
        self._subscribers: list[tuple[str, Callable[[ChangeNotification], None]]] = []
        self._fail_writes = 0
        self._fail_loads = 0
        self.write_log: list[tuple[str, str, str]] = []

    # Failure injection ------------------------------------------------------

    def fail_next_writes(self, count: int = 1) -> None:
        self._fail_writes = count

    def fail_next_loads(self, count: int = 1) -> None:
        self._fail_loads = count

    def _check_write(self) -> None:
        if self._fail_writes > 0:
            self._fail_writes -= 1
            raise PersistenceError("simulated write failure")

    # Storage ----------------------------------------------------------------

    def _collection(self, scope: str, entity_type: str) -> dict[str, dict]:
        return self._data.setdefault(scope, {}).setdefault(entity_type, {})

    def load(self, scope: str) -> dict[str, list[dict]]:
        with self._lock:
            if self._fail_loads > 0:
                self._fail_loads -= 1
                raise PersistenceError("simulated load failure")
            snapshot = empty_snapshot()
            for entity_type, rows in self._data.get(scope, {}).items():
                snapshot[entity_type] = [copy.deepcopy(row) for row in rows.values()]
            return snapshot

    def upsert(self, scope: str, entity_type: str, record: dict, origin: str | None) -> None:
        with self._lock:
            self._check_write()
            rows = self._collection(scope, entity_type)
            entity_id = record["id"]
            event_type = EVENT_UPDATE if entity_id in rows else EVENT_INSERT
            rows[entity_id] = copy.deepcopy(record)
            self.write_log.append((event_type, entity_type, entity_id))
            note = ChangeNotification(event_type, entity_type, entity_id, copy.deepcopy(record), origin)
        self._broadcast(scope, note)

    def delete(self, scope: str, entity_type: str, entity_id: str, origin: str | None) -> None:
        with self._lock:
            self._check_write()
            self._collection(scope, entity_type).pop(entity_id, None)
            self.write_log.append((EVENT_DELETE, entity_type, entity_id))
            note = ChangeNotification(EVENT_DELETE, entity_type, entity_id, None, origin)
        self._broadcast(scope, note)

    def records(self, scope: str, entity_type: str) -> list[dict]:
        with self._lock:
            return [copy.deepcopy(row) for row in self._collection(scope, entity_type).values()]

    # Notifications ----------------------------------------------------------

    def add_subscriber(self, scope: str, callback) -> Callable[[], None]:
        entry = (scope, callback)
        with self._lock:
            self._subscribers.append(entry)

        def _cancel():
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return _cancel

    def _broadcast(self, scope: str, note: ChangeNotification) -> None:
        with self._lock:
            targets = [cb for sub_scope, cb in self._subscribers if sub_scope == scope]
        for callback in targets:
            callback(note)


class MemoryPersistencePort(PersistencePort):
    supports_realtime = True

    def __init__(self, backend: MemoryBackend | None = None):
        self.backend = backend or MemoryBackend()

    def load_all(self, scope: str) -> dict[str, list[dict]]:
        return self.backend.load(scope)

    def upsert(self, scope: str, entity_type: str, record: dict, *, origin: str | None = None) -> None:
        self.backend.upsert(scope, entity_type, record, origin)

    def delete(self, scope: str, entity_type: str, entity_id: str, *, origin: str | None = None) -> None:
        self.backend.delete(scope, entity_type, entity_id, origin)

    def subscribe(self, scope: str, callback) -> Subscription:
        return Subscription(self.backend.add_subscriber(scope, callback))

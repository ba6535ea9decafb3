# Overview: Persistence port contract the business store depends on.

"""
Persistence Port Contract (authoritative)

- load_all(scope) is called once per store load, before any mutation is
  accepted. It returns every collection, records in insertion order.
- Writes are per entity (upsert/delete). The store serializes them through
  a single FIFO writer, so a later write for an entity never lands before
  an earlier one.
- subscribe(scope, callback) delivers ChangeNotification values for changes
  made by other writers. Local-only ports return a no-op subscription.
- Every failure surfaces as PersistenceError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from ..models import ENTITY_TYPES


EVENT_INSERT = "insert"
EVENT_UPDATE = "update"
EVENT_DELETE = "delete"

VALID_EVENT_TYPES = [EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE]


@dataclass(frozen=True)
class ChangeNotification:
    """Row-level change pushed by a realtime-capable port."""
    event_type: str
    entity_type: str
    entity_id: str
    record: dict | None = None
    origin: str | None = None


class Subscription:
    """Handle returned by subscribe(); unsubscribe() is idempotent."""

    def __init__(self, cancel: Callable[[], None] | None = None):
        self._cancel = cancel
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._cancel is not None:
            self._cancel()


def empty_snapshot() -> dict[str, list[dict]]:
    return {entity_type: [] for entity_type in ENTITY_TYPES}


class PersistencePort(ABC):
    supports_realtime = False

    @abstractmethod
    def load_all(self, scope: str) -> dict[str, list[dict]]:
        ...

    @abstractmethod
    def upsert(self, scope: str, entity_type: str, record: dict, *, origin: str | None = None) -> None:
        ...

    @abstractmethod
    def delete(self, scope: str, entity_type: str, entity_id: str, *, origin: str | None = None) -> None:
        ...

    def subscribe(self, scope: str, callback: Callable[[ChangeNotification], None]) -> Subscription:
        return Subscription()

    def poll(self) -> int:
        """Deliver pending remote notifications; returns how many were delivered."""
        return 0

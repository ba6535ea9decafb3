# Overview: Relational persistence port with a polled change feed.

"""
Relational Port Invariants (authoritative)

- Each entity is one EntityRecord row; position preserves insertion order.
- Every upsert/delete appends a ChangeEvent in the same DB transaction.
- Subscribers start at the current end of the feed and only see events
  appended after they subscribed, filtered to their scope.
- Transient database errors are retried; anything left raises
  PersistenceError after the session is rolled back.
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager

from sqlalchemy import func
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ..errors import PersistenceError
from ..extensions import db
from ..models import EntityRecord, ChangeEvent
from ..services.concurrency import run_with_retry
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


class _FeedCursor:
    def __init__(self, scope: str, callback, last_id: int):
        self.scope = scope
        self.callback = callback
        self.last_id = last_id


class SqlPersistencePort(PersistencePort):
    supports_realtime = True

    def __init__(self, app=None, *, attempts: int = 3, backoff_base: float = 0.1):
        self.app = app
        self.attempts = attempts
        self.backoff_base = backoff_base
        self._cursors: list[_FeedCursor] = []
        self._lock = threading.RLock()

    @contextmanager
    def _context(self):
        # Writer threads have no app context of their own
        if self.app is None:
            yield
        else:
            with self.app.app_context():
                yield

    def _run(self, op, description: str):
        def _rollback(_exc):
            db.session.rollback()

        try:
            return run_with_retry(
                op,
                attempts=self.attempts,
                backoff_base=self.backoff_base,
                retry_on=(OperationalError,),
                on_retry=_rollback,
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(f"{description} failed: {exc}") from exc

    # Load ---------------------------------------------------------------------

    def load_all(self, scope: str) -> dict[str, list[dict]]:
        def _op():
            snapshot = empty_snapshot()
            rows = (
                db.session.query(EntityRecord)
                .filter(EntityRecord.scope == scope)
                .order_by(EntityRecord.position.asc(), EntityRecord.id.asc())
                .all()
            )
            for row in rows:
                snapshot.setdefault(row.entity_type, []).append(json.loads(row.payload))
            return snapshot

        with self._context():
            return self._run(_op, f"load of scope {scope}")

    # Writes -------------------------------------------------------------------

    def _append_event(self, scope, entity_type, entity_id, event_type, payload, origin) -> None:
        db.session.add(
            ChangeEvent(
                scope=scope,
                entity_type=entity_type,
                entity_id=entity_id,
                event_type=event_type,
                payload=payload,
                origin=origin,
            )
        )

    def upsert(self, scope: str, entity_type: str, record: dict, *, origin: str | None = None) -> None:
        entity_id = record["id"]
        payload = json.dumps(record, sort_keys=True)

        def _op():
            row = (
                db.session.query(EntityRecord)
                .filter_by(scope=scope, entity_type=entity_type, entity_id=entity_id)
                .first()
            )
            if row is None:
                last_position = (
                    db.session.query(func.coalesce(func.max(EntityRecord.position), 0))
                    .filter_by(scope=scope, entity_type=entity_type)
                    .scalar()
                )
                db.session.add(
                    EntityRecord(
                        scope=scope,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        payload=payload,
                        position=int(last_position or 0) + 1,
                    )
                )
                event_type = EVENT_INSERT
            else:
                row.payload = payload
                event_type = EVENT_UPDATE
            self._append_event(scope, entity_type, entity_id, event_type, payload, origin)
            db.session.commit()

        with self._context():
            self._run(_op, f"upsert of {entity_type} {entity_id}")

    def delete(self, scope: str, entity_type: str, entity_id: str, *, origin: str | None = None) -> None:
        def _op():
            db.session.query(EntityRecord).filter_by(
                scope=scope, entity_type=entity_type, entity_id=entity_id
            ).delete()
            self._append_event(scope, entity_type, entity_id, EVENT_DELETE, None, origin)
            db.session.commit()

        with self._context():
            self._run(_op, f"delete of {entity_type} {entity_id}")

    # Change feed --------------------------------------------------------------

    def _feed_head(self) -> int:
        return int(db.session.query(func.coalesce(func.max(ChangeEvent.id), 0)).scalar() or 0)

    def subscribe(self, scope: str, callback) -> Subscription:
        with self._context():
            head = self._run(self._feed_head, "change feed lookup")
        cursor = _FeedCursor(scope, callback, head)
        with self._lock:
            self._cursors.append(cursor)

        def _cancel():
            with self._lock:
                if cursor in self._cursors:
                    self._cursors.remove(cursor)

        return Subscription(_cancel)

    def poll(self) -> int:
        """Deliver change events appended since each subscriber's cursor."""
        with self._lock:
            cursors = list(self._cursors)
        if not cursors:
            return 0

        delivered = 0
        for cursor in cursors:
            def _op(cursor=cursor):
                return (
                    db.session.query(ChangeEvent)
                    .filter(ChangeEvent.scope == cursor.scope, ChangeEvent.id > cursor.last_id)
                    .order_by(ChangeEvent.id.asc())
                    .all()
                )

            with self._context():
                events = self._run(_op, "change feed poll")
                notes = [
                    (
                        ev.id,
                        ChangeNotification(
                            event_type=ev.event_type,
                            entity_type=ev.entity_type,
                            entity_id=ev.entity_id,
                            record=json.loads(ev.payload) if ev.payload else None,
                            origin=ev.origin,
                        ),
                    )
                    for ev in events
                ]
            for event_id, note in notes:
                cursor.last_id = event_id
                cursor.callback(note)
                delivered += 1
        if delivered:
            logger.debug("Delivered %d change notifications", delivered)
        return delivered

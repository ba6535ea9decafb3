# Overview: SQLAlchemy tables backing the relational persistence port.

from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


class EntityRecord(db.Model):
    """
    Durable copy of one business entity.

    WHY: The store owns entity shape; the database stores each entity as a
    JSON payload keyed by (scope, entity_type, entity_id). position keeps
    the insertion order the store relies on for stable rankings.
    """
    __tablename__ = "entity_records"
    __table_args__ = (
        db.UniqueConstraint("scope", "entity_type", "entity_id", name="uq_entity_records_key"),
        db.Index("ix_entity_records_scope_type", "scope", "entity_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    payload = db.Column(db.Text, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class ChangeEvent(db.Model):
    """
    Append-only change feed.

    Invariants:
    - id is the feed sequence; subscribers resume after the last id seen.
    - Rows are written in the same transaction as the EntityRecord change.
    - Never updated or deleted by application code.
    """
    __tablename__ = "change_events"
    __table_args__ = (
        db.Index("ix_change_events_scope_id", "scope", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    event_type = db.Column(db.String(16), nullable=False)  # insert | update | delete
    payload = db.Column(db.Text, nullable=True)
    origin = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope": self.scope,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "event_type": self.event_type,
            "origin": self.origin,
            "created_at": to_utc_z(self.created_at),
        }

# Overview: Shared behavior for the immutable business entity dataclasses.

from __future__ import annotations

import uuid
from dataclasses import fields, replace
from datetime import datetime

from ..time_utils import coerce_datetime, to_utc_z


def new_id() -> str:
    """Opaque, collision-free entity identity."""
    return uuid.uuid4().hex


class EntityMixin:
    """
    Serialization helpers for frozen entity dataclasses.

    Entities are snapshots: the store replaces them on every mutation and
    never hands out anything a caller could mutate in place.
    """

    entity_type = ""
    DATETIME_FIELDS = ("created_at", "updated_at")

    def to_dict(self) -> dict:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = to_utc_z(value)
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict):
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key in cls.DATETIME_FIELDS:
                value = coerce_datetime(value)
            kwargs[key] = value
        return cls(**kwargs)

    def evolve(self, **changes):
        return replace(self, **changes)

# Overview: Applies change notifications from other writers to in-memory collections.

"""
Reconciliation Rules

- insert/update: upsert the record by id (replace in place, or append).
- delete: remove by id; deleting an absent id is a no-op.
- No derived-field recomputation: the remote writer already maintained the
  invariants for the records it pushed.
- Applying the same notification twice leaves the collection unchanged
  (last applied wins by field overwrite).
"""

from __future__ import annotations

import logging

from ..persistence.base import ChangeNotification, EVENT_DELETE, VALID_EVENT_TYPES

logger = logging.getLogger(__name__)

APPLIED_UPSERT = "upsert"
APPLIED_DELETE = "delete"


def apply_change(collections: dict, notification: ChangeNotification, entity_classes: dict) -> str | None:
    """
    Apply one notification to collections (entity_type -> {id: entity}).

    Returns the action applied, or None when the notification was ignored.
    """
    entity_cls = entity_classes.get(notification.entity_type)
    if entity_cls is None:
        logger.warning("Ignoring change for unknown entity type %s", notification.entity_type)
        return None
    if notification.event_type not in VALID_EVENT_TYPES:
        logger.warning("Ignoring change with unknown event type %s", notification.event_type)
        return None

    collection = collections[notification.entity_type]

    if notification.event_type == EVENT_DELETE:
        if collection.pop(notification.entity_id, None) is None:
            logger.debug("Delete for absent %s %s", notification.entity_type, notification.entity_id)
        return APPLIED_DELETE

    if not notification.record:
        logger.warning(
            "Ignoring %s for %s %s without a record",
            notification.event_type,
            notification.entity_type,
            notification.entity_id,
        )
        return None

    entity = entity_cls.from_dict(notification.record)
    # dict assignment keeps the original insertion position for known ids
    collection[entity.id] = entity
    return APPLIED_UPSERT

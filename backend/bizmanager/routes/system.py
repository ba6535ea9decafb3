# backend/bizmanager/routes/system.py
"""
System health, business profile and sync status endpoints.
"""

from flask import Blueprint, current_app, jsonify

from ..decorators import require_actor, map_store_errors
from ..extensions import get_business_store
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def _sync_payload(store) -> dict:
    error = store.last_persistence_error
    return {
        "state": store.state,
        "sync_status": store.sync_status,
        "pending_writes": store.pending_writes,
        "last_error": str(error) if error else None,
        "realtime": store.port.supports_realtime,
        "scope": store.scope,
    }


@system_bp.get("/api/health")
def health():
    """
    Liveness plus store state.

    Returns 200 when the store is ready, 503 while loading or after a failed
    initial load.
    """
    store = get_business_store()
    healthy = store.is_ready
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "backend": current_app.config.get("PERSISTENCE_BACKEND"),
        "store": _sync_payload(store),
    }
    return jsonify(body), 200 if healthy else 503


@system_bp.get("/api/profile")
@require_actor
def business_profile():
    return jsonify(get_business_store().profile.to_dict())


@system_bp.get("/api/sync")
@require_actor
def sync_status():
    return jsonify(_sync_payload(get_business_store()))


@system_bp.post("/api/sync")
@require_actor
@map_store_errors
def sync_now():
    """Drain pending writes and pull remote changes."""
    store = get_business_store()
    flushed = store.flush()
    delivered = store.sync_remote()
    return jsonify({**_sync_payload(store), "flushed": flushed, "delivered": delivered})

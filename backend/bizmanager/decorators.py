# Overview: Request decorators for API routes (actor context and store error mapping).

from functools import wraps
from flask import request, jsonify, g, current_app, has_app_context

from .errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ReferentialIntegrityError,
    StoreNotReadyError,
    ValidationError,
)
from .models import Actor, ANONYMOUS


def current_actor():
    """Actor of the active request, or None outside one."""
    if not has_app_context():
        return None
    return g.get("actor")


def require_actor(f):
    """
    Establish who is acting for the duration of the request.

    Sets g.actor from the X-Actor-Id / X-Actor-Name / X-Actor-Role headers.
    Requests without X-Actor-Id act as ANONYMOUS. Identity is recorded on
    created entities (created_by); nothing here authorizes anything.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get("X-Actor-Id") or "").strip()
        if actor_id:
            g.actor = Actor(
                id=actor_id,
                display_name=request.headers.get("X-Actor-Name", ""),
                role=request.headers.get("X-Actor-Role", "owner"),
            )
        else:
            g.actor = ANONYMOUS
        return f(*args, **kwargs)

    return decorated_function


def map_store_errors(f):
    """
    Translate store errors into JSON error responses.

    - ConflictError / ReferentialIntegrityError -> 409
    - ValidationError -> 400
    - NotFoundError -> 404
    - StoreNotReadyError / PersistenceError -> 503
    Anything else is logged and returned as 500.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (ConflictError, ReferentialIntegrityError) as e:
            return jsonify({"error": str(e)}), 409
        except ValidationError as e:
            return jsonify({"error": str(e)}), 400
        except NotFoundError as e:
            return jsonify({"error": str(e)}), 404
        except (StoreNotReadyError, PersistenceError) as e:
            return jsonify({"error": str(e)}), 503
        except Exception:
            current_app.logger.exception("Unhandled error in %s", request.path)
            return jsonify({"error": "Internal server error"}), 500

    return decorated_function

# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.catalog_service import get_business


def _header_int(name: str) -> int | None:
    raw = (request.headers.get(name) or "").strip()
    if not raw.isdigit():
        return None
    return int(raw)


def require_actor(f):
    """
    Establish actor and tenant context from the upstream gateway headers.

    Sets on flask.g:
    - g.actor_id:    X-Actor-Id (required)
    - g.actor_role:  X-Actor-Role (optional, upper-cased)
    - g.business_id: X-Business-Id (required, must be an active business)

    Authentication happens upstream; this only refuses requests that arrive
    without an identity.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = _header_int("X-Actor-Id")
        business_id = _header_int("X-Business-Id")
        if actor_id is None or business_id is None:
            return jsonify({"error": {
                "code": "ACTOR_REQUIRED",
                "message": "X-Actor-Id and X-Business-Id headers are required",
                "details": {},
            }}), 401

        get_business(business_id)

        g.actor_id = actor_id
        g.actor_role = (request.headers.get("X-Actor-Role") or "").strip().upper() or None
        g.business_id = business_id
        return f(*args, **kwargs)

    return decorated_function


def json_body() -> dict:
    """Request JSON, or an empty dict when the body is missing."""
    return request.get_json(silent=True) or {}

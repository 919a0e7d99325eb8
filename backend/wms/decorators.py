# Overview: Request decorators establishing who is acting.

from functools import wraps
from flask import request, jsonify, g

from .actor import Actor, ROLE_ADMIN, ROLES


ACTOR_HEADER = "X-Actor"
ROLE_HEADER = "X-Actor-Role"


def require_actor(f):
    """
    Establish the acting user from headers set by the authentication gateway.

    Sets g.actor (Actor). Returns 401 when no username is supplied and 400
    for an unknown role.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        username = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not username:
            return jsonify({"error": "Authentication required"}), 401

        role = (request.headers.get(ROLE_HEADER) or "User").strip()
        if role not in ROLES:
            return jsonify({"error": f"Unknown role: {role}"}), 400

        g.actor = Actor(username=username, role=role)
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the Admin role. Must be stacked under @require_actor."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = getattr(g, "actor", None)
        if actor is None:
            return jsonify({"error": "Authentication required"}), 401
        if actor.role != ROLE_ADMIN:
            return jsonify({"error": "Permission denied", "required_role": ROLE_ADMIN}), 403
        return f(*args, **kwargs)

    return decorated_function

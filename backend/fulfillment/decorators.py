# Overview: Actor resolution and role guards for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services.directory_service import get_active_user, is_admin_role
from .models import UserRoleName


ACTOR_HEADER = "X-User-Id"


def require_actor(f):
    """
    Resolve the acting user from the X-User-Id header.

    Token issuance lives outside this service; an upstream gateway
    authenticates and forwards the subject id.

    Sets g.current_user. Returns 401 if the header is missing or names an
    unknown or inactive user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = request.headers.get(ACTOR_HEADER, "").strip()
        if not user_id:
            return jsonify({"error": "Authentication required", "code": "unauthenticated", "changed": False}), 401

        user = get_active_user(user_id)
        if user is None:
            current_app.logger.warning("Rejected unknown actor %r on %s %s", user_id, request.method, request.path)
            return jsonify({"error": "Unknown or inactive user", "code": "unauthenticated", "changed": False}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def _forbidden(message: str):
    return jsonify({"error": message, "code": "access_denied", "changed": False}), 403


def require_self_or_admin(f):
    """Managing a user's assignments: the route's user_id must be the actor, or the actor is Admin."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = g.current_user
        target = kwargs.get("user_id")
        if target is not None and target != actor.id and not is_admin_role(actor.role):
            return _forbidden("Admin role required to manage another user's warehouses")
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_admin_role(g.current_user.role):
            return _forbidden("Admin role required")
        return f(*args, **kwargs)

    return decorated_function


def require_self_or_manager(f):
    """Reading assignments: the route's own user, Admin or Manager. Routes without user_id need Admin or Manager."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = g.current_user
        target = kwargs.get("user_id")
        allowed = (
            (target is not None and target == actor.id)
            or is_admin_role(actor.role)
            or actor.role == UserRoleName.MANAGER
        )
        if not allowed:
            return _forbidden("Not allowed to view another user's warehouses")
        return f(*args, **kwargs)

    return decorated_function

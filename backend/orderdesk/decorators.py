# Overview: Request and permission decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .errors import PermissionDenied
from .permissions import validate_permission_code
from .services import permission_service, session_service


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.actor to the verified Actor. Core services receive it as an
    explicit argument; routes never pass g itself down.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required", "code": "unauthorized"}), 401

        actor = session_service.validate_session(token)
        if actor is None:
            return jsonify({"error": "Invalid or expired token", "code": "unauthorized"}), 401

        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a specific permission for the authenticated actor.

    Must be stacked below @require_auth.
    """
    if not validate_permission_code(permission_code):
        raise ValueError(f"Unknown permission code: {permission_code}")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required", "code": "unauthorized"}), 401

            try:
                permission_service.require_permission(actor, permission_code)
            except PermissionDenied as e:
                return jsonify(e.to_dict()), e.http_status

            return f(*args, **kwargs)

        return decorated_function

    return decorator

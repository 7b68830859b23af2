# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Reference identity provider: exchanges username/password for an opaque
bearer token. Every other blueprint only sees the resulting Actor.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..actor import Actor
from ..decorators import bearer_token, require_auth
from ..extensions import db
from ..models import User
from ..services import auth_service, permission_service, session_service
from orderdesk.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included as "Authorization: Bearer <token>" on protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required", "code": "validation_error"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.info("Failed login for username=%s", username)
            return jsonify({"error": "Invalid credentials", "code": "unauthorized"}), 401

        session, token = session_service.create_session(user.id)
        permissions = sorted(permission_service.get_actor_permissions(Actor.from_user(user)))

        return jsonify({
            "user": user.to_dict(),
            "permissions": permissions,
            "token": token,
            "expires_at": to_utc_z(session.expires_at),
            "message": "Login successful",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).
    """
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required", "code": "unauthorized"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token", "code": "unauthorized"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user with permission codes, for client-side feature toggles."""
    user = db.session.get(User, g.actor.id)
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_actor_permissions(g.actor)),
    }), 200

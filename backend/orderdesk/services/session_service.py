# Overview: Bearer session tokens resolving a request to a verified Actor.

"""
Opaque bearer sessions.

The client holds a random 32-byte token; the database only keeps its SHA-256
digest, so a leaked table cannot be replayed as credentials. Sessions expire
SESSION_HOURS after login, are revoked on logout, and are revoked on first
use once their user has been deactivated.
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..actor import Actor
from ..errors import NotFound
from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # High-entropy tokens need no slow hash.
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason


def create_session(user_id: str) -> tuple[SessionToken, str]:
    """
    Open a session for a user; returns (session, plaintext token).

    The plaintext token is handed to the client once and never stored.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")

    token = generate_token()
    issued_at = utcnow()
    lifetime = timedelta(hours=current_app.config.get("SESSION_HOURS", 24))

    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=issued_at,
        last_used_at=issued_at,
        expires_at=issued_at + lifetime,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str) -> Actor | None:
    """
    Resolve a bearer token to the Actor it was issued to, or None.
    """
    session = _find(token)
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    user = session.user
    if user is None or not user.is_active:
        _revoke(session, "User account deactivated")
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()
    return Actor.from_user(user)


def revoke_session(token: str, reason: str = "Logout") -> bool:
    """False when the token is unknown or already revoked."""
    session = _find(token)
    if session is None:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True


def revoke_user_sessions(user_id: str, reason: str) -> int:
    """Revoke every open session of a user; returns how many were open."""
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        _revoke(session, reason)
    db.session.commit()
    return len(sessions)

# Overview: Staff accounts and password verification for the identity collaborator.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for password hashing.
The rest of the system only sees the resulting Actor(id, role); this module
is the reference identity provider behind /api/auth/login.

SECURITY NOTES:
- Passwords hashed with bcrypt (BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import ROLES, User
from orderdesk.time_utils import utcnow
from . import session_service


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash verifies as
    False rather than raising.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    password: str,
    role: str,
    name: str | None = None,
) -> User:
    """
    Create a staff account.

    Raises ValidationError for an unknown role or a taken username,
    PasswordValidationError for a weak password.
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("username required")

    if role not in ROLES:
        raise ValidationError(f"Invalid role '{role}'. Must be one of: {', '.join(ROLES)}")

    if db.session.query(User).filter_by(username=username).first():
        raise ValidationError(f"Username '{username}' already exists")

    user = User(
        username=username,
        name=name,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Return the active user for valid credentials, otherwise None.
    """
    user = db.session.query(User).filter_by(username=username).first()
    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def set_user_active(username: str, active: bool) -> User:
    """
    Enable or disable an account. Disabling revokes its open sessions.
    """
    user = db.session.query(User).filter_by(username=username).first()
    if user is None:
        raise NotFound(f"User '{username}' not found")

    user.is_active = active
    db.session.commit()

    if not active:
        session_service.revoke_user_sessions(user.id, "User account deactivated")
    return user

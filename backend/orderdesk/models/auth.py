from __future__ import annotations

import uuid

from ..extensions import db
from orderdesk.time_utils import to_utc_z


ROLES = ("admin", "sales_manager", "warehouse", "accountant", "courier")


def _new_user_id() -> str:
    return uuid.uuid4().hex


class User(db.Model):
    """
    Staff accounts. The id is an opaque string because orders reference
    couriers by it (orders.courier_id) and it is echoed in audit rows.

    WHY: Every action must be attributable. No shared logins.
    """
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_new_user_id)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(32), nullable=False, default="courier")

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at),
        }


class SessionToken(db.Model):
    """
    Bearer session issued by /api/auth/login.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Absolute timeout from SESSION_HOURS
    - Revocable on logout or account deactivation
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z


class AuditEntry(db.Model):
    """
    One row per state-changing operation.

    IMMUTABLE: never update or delete. Written with flush() inside the
    same session as the mutation it records, so both land in one commit.
    """
    __tablename__ = "audit_entries"
    __table_args__ = (
        db.Index("ix_audit_entries_entity", "entity", "entity_id"),
        db.Index("ix_audit_entries_timestamp", "timestamp", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    entity = db.Column(db.String(32), nullable=False)   # "order", "stock_unit"
    entity_id = db.Column(db.String(64), nullable=False)
    action = db.Column(db.String(64), nullable=False, index=True)  # "status_change", "courier_assigned", ...
    user_id = db.Column(db.String(36), nullable=True)
    snapshot = db.Column(db.JSON, nullable=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "action": self.action,
            "user_id": self.user_id,
            "snapshot": self.snapshot,
            "timestamp": to_utc_z(self.timestamp),
        }

# Overview: Append-only audit trail for every state-changing operation.

from __future__ import annotations

from typing import Optional

from ..extensions import db
from ..models import AuditEntry
"""
Audit trail invariants

- Append-only: no update or delete path exists for AuditEntry.
- Entries are flushed inside the same session as the mutation they record
  and committed with it; a rolled-back operation leaves no entry behind.
- snapshot is JSON: callers pass to_dict() output or a small {from, to} map.
"""


def append_audit_entry(
    *,
    entity: str,
    entity_id,
    action: str,
    user_id: Optional[str],
    snapshot: Optional[dict] = None,
) -> AuditEntry:
    entry = AuditEntry(
        entity=entity,
        entity_id=str(entity_id),
        action=action,
        user_id=user_id,
        snapshot=snapshot,
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def list_audit_entries(
    *,
    entity: Optional[str] = None,
    entity_id=None,
    action: Optional[str] = None,
    limit: int = 200,
) -> list[AuditEntry]:
    """Newest first."""
    q = db.session.query(AuditEntry)
    if entity:
        q = q.filter(AuditEntry.entity == entity)
    if entity_id is not None:
        q = q.filter(AuditEntry.entity_id == str(entity_id))
    if action:
        q = q.filter(AuditEntry.action == action)
    q = q.order_by(AuditEntry.timestamp.desc(), AuditEntry.id.desc())
    return q.limit(limit).all()

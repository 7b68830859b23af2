# Overview: Human-readable document numbers from an atomic sequence table.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Atomically allocate the next document number for a type.

    The increment is a single UPDATE, so concurrent callers never receive
    the same number. The first caller for a type inserts the row inside a
    savepoint; losing that insert race falls back to the UPDATE path.
    Runs inside the caller's transaction and does not commit.
    """
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            return f"{prefix}-{1:0{pad}d}"
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return f"{prefix}-{current - 1:0{pad}d}"

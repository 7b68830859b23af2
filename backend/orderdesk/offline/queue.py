# Overview: Device-local durable FIFO of commands that could not reach the API.

"""
Offline Action Queue

Stored in a small SQLite file (any SQLAlchemy URL works) so pending actions
survive a restart of the courier device. It is a plain SQLAlchemy Core table
rather than a Flask-SQLAlchemy model: the device process has no Flask app
and no access to the server database.

Entries are keyed by an autoincrement id; enqueue order is id order.
Rows are deleted when their replay succeeds.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    Table,
    Text,
    create_engine,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import SQLAlchemyError

from ..commands import Command, command_from_payload, to_payload
from ..errors import StorageError
from ..time_utils import utcnow


metadata = MetaData()

pending_actions = Table(
    "pending_actions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("payload", Text, nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("synced", Boolean, nullable=False, default=False),
    Column("attempts", Integer, nullable=False, default=0),
    Column("last_error", Text, nullable=True),
    sqlite_autoincrement=True,
)


@dataclass(frozen=True)
class PendingAction:
    id: int
    payload: dict
    created_at: datetime
    synced: bool = False
    attempts: int = 0
    last_error: Optional[str] = None

    @property
    def command(self) -> Command:
        return command_from_payload(self.payload)

    @property
    def type(self) -> str:
        return self.payload.get("type", "")


class OfflineActionQueue:
    def __init__(self, url: str, *, engine=None):
        self.url = url
        self.engine = engine or create_engine(url)
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageError("Offline queue storage is unavailable", details={"url": url}) from exc

    def enqueue(self, command: Command) -> int:
        """Store the command verbatim; returns its queue id."""
        payload = json.dumps(to_payload(command), sort_keys=True)
        stmt = insert(pending_actions).values(
            payload=payload,
            created_at=utcnow(),
            synced=False,
            attempts=0,
        )
        with self._begin() as conn:
            result = conn.execute(stmt)
            return result.inserted_primary_key[0]

    def list_pending(self) -> list[PendingAction]:
        """Unsynced actions in enqueue order."""
        stmt = (
            select(pending_actions)
            .where(pending_actions.c.synced.is_(False))
            .order_by(pending_actions.c.id)
        )
        with self._begin() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [
            PendingAction(
                id=row["id"],
                payload=json.loads(row["payload"]),
                created_at=row["created_at"],
                synced=row["synced"],
                attempts=row["attempts"],
                last_error=row["last_error"],
            )
            for row in rows
        ]

    def mark_synced(self, action_id: int) -> None:
        with self._begin() as conn:
            conn.execute(delete(pending_actions).where(pending_actions.c.id == action_id))

    def record_failure(self, action_id: int, error: str) -> None:
        stmt = (
            update(pending_actions)
            .where(pending_actions.c.id == action_id)
            .values(
                attempts=pending_actions.c.attempts + 1,
                last_error=error,
            )
        )
        with self._begin() as conn:
            conn.execute(stmt)

    def count(self) -> int:
        stmt = select(func.count()).select_from(pending_actions).where(pending_actions.c.synced.is_(False))
        with self._begin() as conn:
            return conn.execute(stmt).scalar_one()

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _begin(self):
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise StorageError("Offline queue storage is unavailable", details={"url": self.url}) from exc

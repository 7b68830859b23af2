# Overview: The verified caller identity passed explicitly into every core operation.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Actor:
    """
    Who is performing an operation.

    Resolved per request by the identity collaborator (see
    services/session_service.py) and handed down as a parameter; services
    never read request-global state to find the current user.
    """
    id: str
    role: str
    name: Optional[str] = None

    @property
    def is_courier(self) -> bool:
        return self.role == "courier"

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(id=user.id, role=user.role, name=user.name or user.username)

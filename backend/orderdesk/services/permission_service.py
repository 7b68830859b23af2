# Overview: Role-based permission checks for an explicit Actor.

"""
Permission checking for the core services.

DESIGN PRINCIPLES:
- Fail closed: unknown roles have no permissions
- Explicit actor: every check receives the Actor, never request globals
- Log denials only: grants are not logged
"""

from flask import current_app

from ..actor import Actor
from ..errors import PermissionDenied
from ..permissions import get_role_permissions


def get_actor_permissions(actor: Actor) -> frozenset:
    return get_role_permissions(actor.role)


def has_permission(actor: Actor, permission_code: str) -> bool:
    return permission_code in get_actor_permissions(actor)


def require_permission(actor: Actor, permission_code: str) -> None:
    """
    Raise PermissionDenied unless the actor's role grants permission_code.
    """
    if has_permission(actor, permission_code):
        return

    current_app.logger.warning(
        "Permission denied: user=%s role=%s permission=%s",
        actor.id, actor.role, permission_code,
    )
    raise PermissionDenied(
        f"Missing permission: {permission_code}",
        details={"required_permission": permission_code},
    )

# Overview: Permission system package.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    ORDER_PERMISSIONS,
    DELIVERY_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    get_all_permission_codes,
    get_permission_definition,
    get_role_permissions,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "ORDER_PERMISSIONS",
    "DELIVERY_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_all_permission_codes",
    "get_permission_definition",
    "get_role_permissions",
    "validate_permission_code",
]

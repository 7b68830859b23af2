# Overview: Lookups over the permission table and the role map.

from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS


_BY_CODE = {
    code: {"code": code, "name": name, "description": description, "category": category}
    for code, name, description, category in PERMISSION_DEFINITIONS
}


def get_all_permission_codes():
    return [definition[0] for definition in PERMISSION_DEFINITIONS]


def get_permission_definition(code):
    """Definition dict for a code, or None when the code is not defined."""
    definition = _BY_CODE.get(code)
    return dict(definition) if definition else None


def get_role_permissions(role):
    """Unknown roles get an empty set (fail closed)."""
    return frozenset(DEFAULT_ROLE_PERMISSIONS.get(role, ()))


def validate_permission_code(code):
    return code in _BY_CODE

"""
Role hierarchy and role -> permission tables for the forum.

The three permission sets are the precomputed closure of the hierarchy:
each higher role's set is built by explicit union with the set below it,
so lookups never walk an inheritance graph at request time.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, List

from forum.utils.rbac.permission_enum import Permission


class Role(str, Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


# Levels are only ever compared, never added or subtracted.
ROLE_HIERARCHY: Dict[str, int] = {
    Role.USER.value: 0,
    Role.MODERATOR.value: 1,
    Role.ADMIN.value: 2,
}

# Sentinel for unknown or missing roles; lower than every real level.
UNKNOWN_ROLE_LEVEL = -1

VALID_ROLES = tuple(r.value for r in Role)

_USER_PERMISSIONS = frozenset(p.value for p in (
    # Directory
    Permission.Users.VIEW,
    Permission.Users.VIEW_DETAILS,
    # Own forums
    Permission.Forums.CREATE,
    Permission.Forums.EDIT_OWN,
    Permission.Forums.DELETE_OWN,
    # Own threads
    Permission.Threads.CREATE,
    Permission.Threads.EDIT_OWN,
    Permission.Threads.DELETE_OWN,
    # Own replies
    Permission.Replies.CREATE,
    Permission.Replies.EDIT_OWN,
    Permission.Replies.DELETE_OWN,
))

_MODERATOR_PERMISSIONS = _USER_PERMISSIONS | frozenset(p.value for p in (
    Permission.Forums.EDIT_ANY,
    Permission.Forums.DELETE_ANY,
    Permission.Threads.EDIT_ANY,
    Permission.Threads.DELETE_ANY,
    Permission.Replies.EDIT_ANY,
    Permission.Replies.DELETE_ANY,
    Permission.Forums.LOCK,
    Permission.Threads.LOCK,
    Permission.Moderation.MODERATE_CONTENT,
    Permission.Moderation.VIEW_REPORTS,
))

_ADMIN_PERMISSIONS = _MODERATOR_PERMISSIONS | frozenset(p.value for p in (
    Permission.Users.CREATE,
    Permission.Users.EDIT,
    Permission.Users.DELETE,
    Permission.Users.CHANGE_ROLE,
    Permission.Moderation.BAN_USER,
    Permission.System.VIEW_LOGS,
    Permission.System.VIEW_ANALYTICS,
    Permission.System.MANAGE,
))

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    Role.USER.value: _USER_PERMISSIONS,
    Role.MODERATOR.value: _MODERATOR_PERMISSIONS,
    Role.ADMIN.value: _ADMIN_PERMISSIONS,
}


def _check_superset_invariant() -> None:
    ordered = sorted(ROLE_HIERARCHY, key=ROLE_HIERARCHY.get)
    for lower, higher in zip(ordered, ordered[1:]):
        assert ROLE_PERMISSIONS[lower] <= ROLE_PERMISSIONS[higher], (
            f"Role '{higher}' must hold every permission of '{lower}'"
        )
    assert len(set(ROLE_HIERARCHY.values())) == len(ROLE_HIERARCHY), "Role levels must be distinct"


_check_superset_invariant()


def _normalize(role: Any) -> Any:
    if isinstance(role, Role):
        return role.value
    return role


def get_role_permissions(role: Any) -> FrozenSet[str]:
    """
    Get the permission set assigned to a role.

    Args:
        role: Role name (or Role member)

    Returns:
        Frozenset of permission strings, empty for anything that is not a
        defined role (including None and non-string values)
    """
    role = _normalize(role)
    if not isinstance(role, str):
        return frozenset()
    return ROLE_PERMISSIONS.get(role, frozenset())


def is_valid_role(role: Any) -> bool:
    """True iff role is exactly one of the defined role names."""
    role = _normalize(role)
    return isinstance(role, str) and role in ROLE_HIERARCHY


def get_role_level(role: Any) -> int:
    """
    Get the hierarchy level of a role.

    Returns:
        0 for user, 1 for moderator, 2 for admin, or -1 for unknown roles
    """
    role = _normalize(role)
    if not isinstance(role, str):
        return UNKNOWN_ROLE_LEVEL
    return ROLE_HIERARCHY.get(role, UNKNOWN_ROLE_LEVEL)


def roles_with_permission(permission: Any) -> List[str]:
    """
    Get every role that grants a permission, lowest level first.

    Useful for error messages ("You need role X or Y to do this").
    """
    if isinstance(permission, Enum):
        permission = permission.value
    return [
        role for role in sorted(ROLE_HIERARCHY, key=ROLE_HIERARCHY.get)
        if permission in ROLE_PERMISSIONS[role]
    ]

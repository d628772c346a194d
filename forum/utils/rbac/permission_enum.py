"""
RBAC Permission Enum - Authoritative list of all forum permission strings.

Permissions are grouped into nested enums by category. Each inner class is a
str-valued Enum, so members compare equal to their string values and can be
used anywhere a plain string is expected without calling .value.

Usage:
    from forum.utils.rbac.permission_enum import Permission

    @require_permission(Permission.Forums.LOCK)
    def lock_forum(forum_id): ...

    if has_permission(identity, Permission.Users.CHANGE_ROLE):
        ...
"""

from enum import Enum
from typing import Dict, FrozenSet, Tuple


class Permission:
    """Namespace for all RBAC permission strings, grouped by category."""

    class Users(str, Enum):
        VIEW = "view_users"
        CREATE = "create_users"
        EDIT = "edit_user"
        DELETE = "delete_user"
        CHANGE_ROLE = "change_user_role"
        VIEW_DETAILS = "view_user_details"

    class Forums(str, Enum):
        CREATE = "create_forum"
        EDIT_OWN = "edit_own_forum"
        EDIT_ANY = "edit_any_forum"
        DELETE_OWN = "delete_own_forum"
        DELETE_ANY = "delete_any_forum"
        LOCK = "lock_forum"

    class Threads(str, Enum):
        CREATE = "create_thread"
        EDIT_OWN = "edit_own_thread"
        EDIT_ANY = "edit_any_thread"
        DELETE_OWN = "delete_own_thread"
        DELETE_ANY = "delete_any_thread"
        LOCK = "lock_thread"

    class Replies(str, Enum):
        CREATE = "create_reply"
        EDIT_OWN = "edit_own_reply"
        EDIT_ANY = "edit_any_reply"
        DELETE_OWN = "delete_own_reply"
        DELETE_ANY = "delete_any_reply"

    class Moderation(str, Enum):
        MODERATE_CONTENT = "moderate_content"
        VIEW_REPORTS = "view_reports"
        BAN_USER = "ban_user"

    class System(str, Enum):
        VIEW_LOGS = "view_logs"
        VIEW_ANALYTICS = "view_analytics"
        MANAGE = "manage_system"


# Informational grouping only; nothing is enforced per category.
PERMISSION_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "user_management": tuple(p.value for p in Permission.Users),
    "forum_management": tuple(p.value for p in Permission.Forums),
    "thread_management": tuple(p.value for p in Permission.Threads),
    "reply_management": tuple(p.value for p in Permission.Replies),
    "moderation": tuple(p.value for p in Permission.Moderation),
    "system": tuple(p.value for p in Permission.System),
}


def all_permissions() -> FrozenSet[str]:
    """Every permission string known to the catalog."""
    return frozenset(p for perms in PERMISSION_CATEGORIES.values() for p in perms)


def is_known_permission(permission) -> bool:
    if isinstance(permission, Enum):
        permission = permission.value
    return isinstance(permission, str) and permission in all_permissions()

"""
RBAC Permissions - pure rule evaluation over the static role tables.

Every function here is total: missing, malformed or unrecognised input is a
normal deny (False), never an exception. The only allow-by-default case is
can_access_route for a path no table entry covers.

An identity is whatever the authentication layer produced for the request:
a mapping of decoded claims or an object such as Identity, carrying at
least `role` and an id (`_id` or `id`). Resources are mappings or objects
with an owner field (default `created_by`, else `createdBy`) holding either
an id or a nested record with its own `_id`/`id`.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

from forum.utils.rbac.permission_enum import Permission
from forum.utils.rbac.roles import (
    Role,
    UNKNOWN_ROLE_LEVEL,
    get_role_level,
    get_role_permissions,
)
from forum.utils.rbac.route_config import MINIMUM_ROLE_KEYS

DEFAULT_OWNER_FIELD = 'created_by'

# Consulted when the default owner field is absent
_FALLBACK_OWNER_FIELD = 'createdBy'

_ROLE_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def _field(obj: Any, name: str) -> Any:
    """Read a field from a mapping or an attribute from an object."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _value(item: Any) -> Any:
    if isinstance(item, Enum):
        return item.value
    return item


def _role_of(identity: Any) -> Optional[str]:
    role = _value(_field(identity, 'role'))
    if not isinstance(role, str) or not role:
        return None
    return role


def _as_id(value: Any) -> Optional[str]:
    """Stringify an identifier; empty and container values do not count."""
    if value is None or isinstance(value, (Mapping, list, tuple, set, bool)):
        return None
    text = str(value)
    return text or None


def _identity_id(identity: Any) -> Optional[str]:
    return _as_id(_field(identity, '_id')) or _as_id(_field(identity, 'id'))


def _owner_id(resource: Any, owner_field: str) -> Optional[str]:
    owner = _field(resource, owner_field)
    if owner is None:
        return None
    if isinstance(owner, Mapping) or not isinstance(owner, (str, int)):
        nested = _as_id(_field(owner, '_id')) or _as_id(_field(owner, 'id'))
        if nested:
            return nested
    return _as_id(owner)


def has_permission(identity: Any, permission: Any) -> bool:
    """
    Check if an identity's role grants a permission.

    Args:
        identity: Identity mapping/object with a `role`
        permission: Permission string (or Permission enum member)

    Returns:
        True if the role's permission set contains the permission
    """
    role = _role_of(identity)
    permission = _value(permission)
    if role is None or not isinstance(permission, str):
        return False
    return permission in get_role_permissions(role)


def has_any_permission(identity: Any, permissions: Iterable[Any]) -> bool:
    if not isinstance(permissions, _ROLE_SEQUENCE_TYPES):
        return False
    return any(has_permission(identity, p) for p in permissions)


def has_all_permissions(identity: Any, permissions: Iterable[Any]) -> bool:
    if not isinstance(permissions, _ROLE_SEQUENCE_TYPES) or not permissions:
        return False
    return all(has_permission(identity, p) for p in permissions)


def get_user_permissions(identity: Any) -> FrozenSet[str]:
    """All permissions granted to an identity (empty without a valid role)."""
    return get_role_permissions(_role_of(identity))


def has_role(identity: Any, role: Any) -> bool:
    """Exact role match."""
    user_role = _role_of(identity)
    role = _value(role)
    if user_role is None or not isinstance(role, str) or not role:
        return False
    return user_role == role


def has_any_role(identity: Any, roles: Iterable[Any]) -> bool:
    """
    Check if an identity's role is one of several.

    A bare string is not accepted as the role list; pass ['admin'] rather
    than 'admin'.
    """
    user_role = _role_of(identity)
    if user_role is None or not isinstance(roles, _ROLE_SEQUENCE_TYPES):
        return False
    return any(user_role == _value(r) for r in roles)


def has_minimum_role(identity: Any, minimum_role: Any) -> bool:
    """
    Check if an identity's role is at or above a level in the hierarchy.

    An unknown role on either side never satisfies the check, not even
    when both sides are unknown.
    """
    user_role = _role_of(identity)
    if user_role is None:
        return False

    user_level = get_role_level(user_role)
    required_level = get_role_level(_value(minimum_role))

    if user_level == UNKNOWN_ROLE_LEVEL or required_level == UNKNOWN_ROLE_LEVEL:
        return False

    return user_level >= required_level


def _evaluate_requirement(identity: Any, requirement: Any) -> bool:
    if not isinstance(requirement, Mapping):
        return False

    role = requirement.get('role')
    if role:
        if isinstance(role, _ROLE_SEQUENCE_TYPES):
            return has_any_role(identity, role)
        return has_role(identity, role)

    permission = requirement.get('permission')
    if permission:
        return has_permission(identity, permission)

    minimum_role = next((requirement[k] for k in MINIMUM_ROLE_KEYS if requirement.get(k)), None)
    if minimum_role:
        return has_minimum_role(identity, minimum_role)

    # Matched an entry with no recognised requirement
    return False


def can_access_route(identity: Any, path: Optional[str], route_config: Optional[Mapping]) -> bool:
    """
    Check if an identity may access a path under a route table.

    The first entry (in declaration order) whose prefix starts the path
    decides; later entries are never consulted or merged.

    Args:
        identity: Identity mapping/object (may be None)
        path: Request path
        route_config: Ordered mapping of path prefix -> requirement

    Returns:
        The matching entry's verdict, or True when there is no table, no
        path, or no matching entry
    """
    if not route_config or not path or not isinstance(path, str):
        return True
    if not isinstance(route_config, Mapping):
        return True

    for prefix, requirement in route_config.items():
        if isinstance(prefix, str) and path.startswith(prefix):
            return _evaluate_requirement(identity, requirement)

    return True


def owns_resource(identity: Any, resource: Any, owner_field: str = DEFAULT_OWNER_FIELD) -> bool:
    """
    Check if an identity owns a resource.

    The identity id is taken from `_id` then `id`; the owner id from the
    owner field's nested `_id`/`id` then the field itself. Both must
    resolve, and they are compared as strings.
    """
    if identity is None or resource is None:
        return False

    user_id = _identity_id(identity)
    owner_id = _owner_id(resource, owner_field)
    if owner_id is None and owner_field == DEFAULT_OWNER_FIELD:
        owner_id = _owner_id(resource, _FALLBACK_OWNER_FIELD)

    if user_id is None or owner_id is None:
        return False
    return user_id == owner_id


def _can_act_on_resource(identity, resource, own_permission, any_permission, owner_field) -> bool:
    if identity is None:
        return False

    if has_permission(identity, any_permission):
        return True

    return owns_resource(identity, resource, owner_field) and has_permission(identity, own_permission)


def can_edit_resource(
    identity: Any,
    resource: Any,
    edit_own_permission: Any,
    edit_any_permission: Any,
    owner_field: str = DEFAULT_OWNER_FIELD,
) -> bool:
    """
    Check if an identity can edit a resource.

    Holders of `edit_any_permission` can edit anything; otherwise the
    identity must own the resource and hold `edit_own_permission`.
    """
    return _can_act_on_resource(identity, resource, edit_own_permission, edit_any_permission, owner_field)


def can_delete_resource(
    identity: Any,
    resource: Any,
    delete_own_permission: Any,
    delete_any_permission: Any,
    owner_field: str = DEFAULT_OWNER_FIELD,
) -> bool:
    """Same rule as can_edit_resource, for the delete permission pair."""
    return _can_act_on_resource(identity, resource, delete_own_permission, delete_any_permission, owner_field)


def get_permission_context(identity: Any) -> Dict[str, Any]:
    """
    Get a dictionary of permission flags for templates and navigation.

    Returns:
        Dictionary with boolean flags for each major capability
    """
    role = _role_of(identity)
    if identity is None or role is None:
        return {
            'is_authenticated': False,
            'user_role': None,
            'show_admin_link': False,
            'show_moderator_link': False,
            'can_create_forum': False,
            'can_lock_forum': False,
            'can_moderate': False,
            'can_manage_users': False,
            'can_view_logs': False,
            'permissions': [],
        }

    return {
        'is_authenticated': True,
        'user_role': role,
        'show_admin_link': has_role(identity, Role.ADMIN),
        'show_moderator_link': has_minimum_role(identity, Role.MODERATOR),
        'can_create_forum': has_permission(identity, Permission.Forums.CREATE),
        'can_lock_forum': has_permission(identity, Permission.Forums.LOCK),
        'can_moderate': has_permission(identity, Permission.Moderation.MODERATE_CONTENT),
        'can_manage_users': has_permission(identity, Permission.Users.CHANGE_ROLE),
        'can_view_logs': has_permission(identity, Permission.System.VIEW_LOGS),
        'permissions': sorted(get_user_permissions(identity)),
    }

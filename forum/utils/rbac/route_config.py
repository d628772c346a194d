"""
Route access table - maps path prefixes to access requirements.

Each entry carries exactly one requirement shape:
    role          a single role name, or a list of acceptable roles
    minimum_role  the lowest acceptable role in the hierarchy (also 'minimumRole')
    permission    a single permission string

Entries are matched with str.startswith in declaration order and the first
match wins. Overlapping prefixes ('/api' before '/api/users') therefore
shadow the later entry; order the table accordingly.
"""

from typing import Any, Dict, Iterable, Optional

from forum.utils.rbac.roles import Role

ROUTE_CONFIG: Dict[str, Dict[str, Any]] = {
    # Admin pages - admins only
    '/admin': {
        'role': Role.ADMIN.value,
    },

    # Moderator pages - admins and moderators
    '/moderator': {
        'role': [Role.ADMIN.value, Role.MODERATOR.value],
    },

    # API routes
    '/api/users': {
        'minimum_role': Role.MODERATOR.value,
    },
    '/api/logs': {
        'role': Role.ADMIN.value,
    },
    '/api/forums': {
        'minimum_role': Role.USER.value,
    },
    '/api/threads': {
        'minimum_role': Role.USER.value,
    },
}

# Reachable without a session
PUBLIC_ROUTES = (
    '/login',
    '/register',
    '/forgot-password',
    '/api/auth/login',
    '/api/auth/register',
    '/api/auth/refresh',
    '/api/health',
)

# Paths the request gate intercepts at all
PROTECTED_PREFIXES = (
    '/admin',
    '/moderator',
    '/api/',
)

REQUIREMENT_KEYS = ('role', 'minimum_role', 'minimumRole', 'permission')

# Accepted spellings of the minimum role requirement
MINIMUM_ROLE_KEYS = ('minimum_role', 'minimumRole')


def is_public_route(path: Optional[str], public_routes: Optional[Iterable[str]] = None) -> bool:
    if not isinstance(path, str):
        return False
    routes = PUBLIC_ROUTES if public_routes is None else public_routes
    return any(path.startswith(route) for route in routes)


def is_protected_path(path: Optional[str], prefixes: Optional[Iterable[str]] = None) -> bool:
    if not isinstance(path, str):
        return False
    prefixes = PROTECTED_PREFIXES if prefixes is None else prefixes
    return any(path.startswith(prefix) for prefix in prefixes)

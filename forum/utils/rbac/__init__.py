"""
RBAC (Role-Based Access Control) Module for the forum

This module provides authentication and authorization functionality including:
- Permission catalog and the user < moderator < admin role tables
- Route access table and the request gate that enforces it
- Pure permission, role and ownership checks
- JWT verification for the caller's identity
- Audit logging for security events

Usage:
    from forum.utils.rbac import require_permission, can_edit_resource, Permission

    @app.route('/api/forums/<forum_id>/lock', methods=['PATCH'])
    @require_permission(Permission.Forums.LOCK)
    def lock_forum(forum_id):
        ...
"""

from forum.utils.rbac.permission_enum import Permission, PERMISSION_CATEGORIES
from forum.utils.rbac.roles import (
    Role,
    ROLE_HIERARCHY,
    ROLE_PERMISSIONS,
    get_role_permissions,
    get_role_level,
    is_valid_role,
)
from forum.utils.rbac.route_config import (
    ROUTE_CONFIG,
    PUBLIC_ROUTES,
    is_public_route,
)
from forum.utils.rbac.permissions import (
    has_permission,
    has_role,
    has_any_role,
    has_minimum_role,
    can_access_route,
    owns_resource,
    can_edit_resource,
    can_delete_resource,
    get_permission_context,
)
from forum.utils.rbac.registry import (
    RBACConfigError,
    RBACRegistry,
    get_registry,
    load_rbac_config,
)
from forum.utils.rbac.jwt_parser import (
    AuthResult,
    Identity,
    authorize,
    identity_from_claims,
)
from forum.utils.rbac.decorators import (
    require_authenticated,
    require_permission,
    require_any_permission,
    require_role,
    require_minimum_role,
)
from forum.utils.rbac.middleware import RequestGate

__all__ = [
    # Catalog and roles
    'Permission',
    'PERMISSION_CATEGORIES',
    'Role',
    'ROLE_HIERARCHY',
    'ROLE_PERMISSIONS',
    'get_role_permissions',
    'get_role_level',
    'is_valid_role',
    # Route table
    'ROUTE_CONFIG',
    'PUBLIC_ROUTES',
    'is_public_route',
    # Evaluator
    'has_permission',
    'has_role',
    'has_any_role',
    'has_minimum_role',
    'can_access_route',
    'owns_resource',
    'can_edit_resource',
    'can_delete_resource',
    'get_permission_context',
    # Registry
    'RBACConfigError',
    'RBACRegistry',
    'get_registry',
    'load_rbac_config',
    # Authentication
    'AuthResult',
    'Identity',
    'authorize',
    'identity_from_claims',
    # Decorators and gate
    'require_authenticated',
    'require_permission',
    'require_any_permission',
    'require_role',
    'require_minimum_role',
    'RequestGate',
]

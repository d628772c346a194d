"""
RBAC Decorators - Endpoint protection decorators for Flask views

The request gate handles route-level access; these decorators add
per-endpoint requirements on top. They read the identity the gate placed on
flask.g, check it with the pure evaluator functions, and audit the outcome.
"""

from functools import wraps
from typing import Any, Callable, Iterable, List, Optional, Union

from flask import g, jsonify, redirect, request

from forum.utils.logging import get_logger
from forum.utils.rbac.audit import log_permission_check
from forum.utils.rbac.permissions import (
    has_any_role,
    has_minimum_role,
    has_permission,
    has_role,
)
from forum.utils.rbac.registry import get_registry
from forum.utils.rbac.roles import ROLE_HIERARCHY, get_role_level, roles_with_permission

logger = get_logger(__name__)


def get_current_user() -> Any:
    """The identity attached to this request by the gate, or None."""
    return getattr(g, 'user', None)


def _username(user: Any) -> str:
    return getattr(user, 'username', None) or getattr(user, 'id', None) or 'unknown'


def _value(item: Any) -> str:
    return getattr(item, 'value', item)


def _wants_json() -> bool:
    return request.is_json or request.path.startswith('/api/')


def _unauthenticated_response(requirement: str):
    log_permission_check(
        user='anonymous',
        permission=requirement,
        granted=False,
        endpoint=request.path,
        role=None,
    )

    if _wants_json():
        return jsonify({
            'error': 'Authentication required',
            'message': 'Please log in to access this resource',
            'status': 401
        }), 401

    return redirect(get_registry().login_path)


def _forbidden_response(user: Any, requirement: str, missing: Optional[List[str]] = None,
                        allowed_roles: Optional[Iterable[str]] = None):
    log_permission_check(
        user=_username(user),
        permission=requirement,
        granted=False,
        endpoint=request.path,
        role=getattr(user, 'role', None),
        missing=missing,
    )

    allowed_roles = sorted(set(allowed_roles or []))

    if _wants_json():
        payload = {
            'error': 'Insufficient permissions',
            'user_role': getattr(user, 'role', None),
            'status': 403,
        }
        if missing:
            payload['required_permissions'] = missing
        if allowed_roles:
            payload['roles_with_permission'] = allowed_roles
            payload['message'] = f"You need one of these roles to access this feature: {', '.join(allowed_roles)}"
        return jsonify(payload), 403

    return redirect(get_registry().forbidden_redirect)


def _granted(user: Any, requirement: str) -> None:
    log_permission_check(
        user=_username(user),
        permission=requirement,
        granted=True,
        endpoint=request.path,
        role=getattr(user, 'role', None),
    )


def require_authenticated(f: Callable) -> Callable:
    """
    Decorator that requires a verified identity.

    Usage:
        @app.route('/api/me')
        @require_authenticated
        def me():
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if get_current_user() is None:
            return _unauthenticated_response('authenticated')
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission: Union[str, List[str]]) -> Callable:
    """
    Decorator that requires specific permission(s) to access an endpoint.

    If a list of permissions is provided, the user must have ALL of them.
    For "any of" logic, use require_any_permission instead.

    Usage:
        @require_permission(Permission.Forums.LOCK)
        def lock_forum(forum_id):
            ...
    """
    if isinstance(permission, (list, tuple)):
        required_permissions = [_value(p) for p in permission]
    else:
        required_permissions = [_value(permission)]
    requirement = ','.join(required_permissions)

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user is None:
                return _unauthenticated_response(requirement)

            missing = [p for p in required_permissions if not has_permission(user, p)]
            if missing:
                allowed = set()
                for perm in missing:
                    allowed.update(roles_with_permission(perm))
                return _forbidden_response(user, requirement, missing=missing, allowed_roles=allowed)

            _granted(user, requirement)
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def require_any_permission(permissions: List[str]) -> Callable:
    """
    Decorator that requires ANY ONE of the specified permissions.
    """
    required_permissions = [_value(p) for p in permissions]
    requirement = f"any({','.join(required_permissions)})"

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user is None:
                return _unauthenticated_response(requirement)

            if not any(has_permission(user, p) for p in required_permissions):
                allowed = set()
                for perm in required_permissions:
                    allowed.update(roles_with_permission(perm))
                return _forbidden_response(user, requirement, missing=required_permissions, allowed_roles=allowed)

            _granted(user, requirement)
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def require_role(role: Union[str, List[str]]) -> Callable:
    """
    Decorator that requires an exact role, or one of a list of roles.
    """
    if isinstance(role, (list, tuple)):
        roles = [_value(r) for r in role]
    else:
        roles = [_value(role)]
    requirement = f"role({','.join(roles)})"

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user is None:
                return _unauthenticated_response(requirement)

            allowed = has_role(user, roles[0]) if len(roles) == 1 else has_any_role(user, roles)
            if not allowed:
                return _forbidden_response(user, requirement, allowed_roles=roles)

            _granted(user, requirement)
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def require_minimum_role(minimum_role: str) -> Callable:
    """
    Decorator that requires a role at or above a level in the hierarchy.
    """
    minimum_role = _value(minimum_role)
    requirement = f"minimum_role({minimum_role})"

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user is None:
                return _unauthenticated_response(requirement)

            if not has_minimum_role(user, minimum_role):
                level = get_role_level(minimum_role)
                allowed = [r for r, lvl in ROLE_HIERARCHY.items() if level >= 0 and lvl >= level]
                return _forbidden_response(user, requirement, allowed_roles=allowed)

            _granted(user, requirement)
            return f(*args, **kwargs)

        return decorated_function

    return decorator

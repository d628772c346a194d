"""
RBAC Registry - route access configuration for the request gate

Role and permission tables are fixed in code (see roles.py). What a
deployment may change is which paths are protected and how: the route
table, the public routes and the redirect targets. This module loads those
from the `rbac` section of the forum YAML config, validates them once at
startup, and serves them read-only for the rest of the process.
"""

import os
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

import yaml

from forum.utils.logging import get_logger
from forum.utils.rbac.permission_enum import is_known_permission
from forum.utils.rbac.permissions import can_access_route
from forum.utils.rbac.roles import is_valid_role
from forum.utils.rbac.route_config import (
    MINIMUM_ROLE_KEYS,
    PROTECTED_PREFIXES,
    PUBLIC_ROUTES,
    REQUIREMENT_KEYS,
    ROUTE_CONFIG,
    is_protected_path,
    is_public_route,
)

logger = get_logger(__name__)

# Global registry instance (singleton pattern)
_registry: Optional['RBACRegistry'] = None

DEFAULT_LOGIN_PATH = '/login'
DEFAULT_FORBIDDEN_REDIRECT = '/forums'
DEFAULT_COOKIE_NAME = 'accessToken'


class RBACConfigError(Exception):
    """Raised when RBAC configuration is invalid."""
    pass


def validate_route_config(route_config: Any) -> None:
    """
    Validate a route table.

    Every entry must carry exactly one of role / minimum_role (or its
    minimumRole spelling) / permission,
    and every role or permission it names must exist.

    Raises:
        RBACConfigError: If the table is malformed
    """
    if not isinstance(route_config, Mapping):
        raise RBACConfigError("Route table must be a mapping of path prefix -> requirement")

    for prefix, requirement in route_config.items():
        if not isinstance(prefix, str) or not prefix.startswith('/'):
            raise RBACConfigError(f"Route prefix must be a path starting with '/': {prefix!r}")

        if not isinstance(requirement, Mapping):
            raise RBACConfigError(f"Requirement for '{prefix}' must be a mapping")

        shapes = [key for key in REQUIREMENT_KEYS if requirement.get(key)]
        unknown = set(requirement) - set(REQUIREMENT_KEYS)
        if unknown:
            raise RBACConfigError(f"Route '{prefix}' has unknown keys: {sorted(unknown)}")
        if len(shapes) != 1:
            raise RBACConfigError(
                f"Route '{prefix}' must define exactly one of {', '.join(REQUIREMENT_KEYS)}; got {shapes or 'none'}"
            )

        shape = shapes[0]
        value = requirement[shape]

        if shape == 'role':
            roles = value if isinstance(value, (list, tuple)) else [value]
            for role in roles:
                if not is_valid_role(role):
                    raise RBACConfigError(f"Route '{prefix}' requires undefined role '{role}'")
        elif shape in MINIMUM_ROLE_KEYS:
            if not is_valid_role(value):
                raise RBACConfigError(f"Route '{prefix}' requires undefined minimum role '{value}'")
        elif shape == 'permission':
            if not is_known_permission(value):
                raise RBACConfigError(f"Route '{prefix}' requires undefined permission '{value}'")

    # First-match-wins makes a shorter prefix declared earlier shadow a longer one
    prefixes = list(route_config)
    for i, earlier in enumerate(prefixes):
        for later in prefixes[i + 1:]:
            if later.startswith(earlier):
                logger.warning(
                    f"Route '{later}' is shadowed by earlier route '{earlier}' and will never match"
                )


class RBACRegistry:
    """
    Central registry for route-level access control.

    Manages:
    - The ordered route access table
    - Public routes and the prefixes the gate intercepts
    - Redirect targets and the credential cookie name

    Built once at startup; nothing mutates it afterwards.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the RBAC registry from configuration.

        Args:
            config: Dictionary loaded from the `rbac` config section. Missing
                    keys fall back to the built-in tables.
        """
        config = config or {}
        self._config = config

        routes = config.get('routes')
        if routes is not None and not isinstance(routes, Mapping):
            raise RBACConfigError("rbac.routes must be a mapping of path prefix -> requirement")
        public_routes = config.get('public_routes')
        if public_routes is not None and not isinstance(public_routes, (list, tuple)):
            raise RBACConfigError("rbac.public_routes must be a list of paths")
        self._route_config: Dict[str, Dict[str, Any]] = dict(routes) if routes is not None else dict(ROUTE_CONFIG)
        self._public_routes = tuple(public_routes or PUBLIC_ROUTES)
        self._protected_prefixes = tuple(config.get('protected_prefixes') or PROTECTED_PREFIXES)
        self._login_path = config.get('login_path', DEFAULT_LOGIN_PATH)
        self._forbidden_redirect = config.get('forbidden_redirect', DEFAULT_FORBIDDEN_REDIRECT)
        self._cookie_name = config.get('cookie_name', DEFAULT_COOKIE_NAME)

        self._validate_config()

        logger.info(
            f"RBAC Registry initialized: {len(self._route_config)} protected routes, "
            f"{len(self._public_routes)} public routes"
        )

    def _validate_config(self) -> None:
        validate_route_config(self._route_config)

        for route in self._public_routes:
            if not isinstance(route, str) or not route.startswith('/'):
                raise RBACConfigError(f"Public route must be a path starting with '/': {route!r}")

        logger.debug("RBAC configuration validated successfully")

    @property
    def route_config(self) -> Dict[str, Dict[str, Any]]:
        """A copy of the ordered route table."""
        return {prefix: dict(req) for prefix, req in self._route_config.items()}

    @property
    def public_routes(self) -> tuple:
        return self._public_routes

    @property
    def login_path(self) -> str:
        return self._login_path

    @property
    def forbidden_redirect(self) -> str:
        return self._forbidden_redirect

    @property
    def cookie_name(self) -> str:
        return self._cookie_name

    def is_public_route(self, path: str) -> bool:
        return is_public_route(path, self._public_routes)

    def is_protected_path(self, path: str) -> bool:
        return is_protected_path(path, self._protected_prefixes)

    def can_access_route(self, identity: Any, path: str) -> bool:
        return can_access_route(identity, path, self._route_config)

    def matching_route(self, path: str) -> Optional[str]:
        """The prefix that decides access for a path, or None if unrestricted."""
        if not path:
            return None
        for prefix in self._route_config:
            if path.startswith(prefix):
                return prefix
        return None

    def describe_routes(self) -> List[Dict[str, Any]]:
        """Route table as a list of {'prefix', 'requirement', 'value'} rows."""
        rows = []
        for prefix, requirement in self._route_config.items():
            for key in REQUIREMENT_KEYS:
                if requirement.get(key):
                    rows.append({'prefix': prefix, 'requirement': key, 'value': requirement[key]})
                    break
        return rows


def load_rbac_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the `rbac` config section from a YAML file.

    Priority order:
    1. Explicit config_path if provided
    2. FORUM_RBAC_CONFIG environment variable
    3. configs/rbac.yaml under the working directory
    4. Built-in defaults (empty dict)

    The file may either be the `rbac` section itself or a full forum config
    containing an `rbac` key.

    Raises:
        RBACConfigError: If the file cannot be parsed
    """
    search_paths = [
        config_path,
        os.environ.get('FORUM_RBAC_CONFIG'),
        os.path.join(os.getcwd(), 'configs', 'rbac.yaml'),
    ]

    config_file = None
    for path in search_paths:
        if path and os.path.isfile(path):
            config_file = path
            break

    if config_path and config_file != config_path:
        raise RBACConfigError(f"RBAC config file not found: {config_path}")

    if not config_file:
        logger.info("No RBAC configuration file found, using built-in route table")
        return {}

    logger.info(f"Loading RBAC configuration from: {config_file}")
    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise RBACConfigError(f"Could not parse {config_file}: {e}") from e

    if not isinstance(config, dict):
        raise RBACConfigError(f"{config_file} must contain a mapping")

    if 'rbac' in config:
        config = config.get('rbac') or {}
    return config


def get_registry(config_path: Optional[str] = None, force_reload: bool = False) -> RBACRegistry:
    """
    Get the global RBAC registry instance (singleton).

    Args:
        config_path: Optional path to configuration file
        force_reload: If True, reload configuration even if already loaded

    Returns:
        RBACRegistry instance
    """
    global _registry

    if _registry is None or force_reload:
        _registry = RBACRegistry(load_rbac_config(config_path))

    return _registry


def set_registry(registry: RBACRegistry) -> None:
    """Install a registry built from an already-loaded config."""
    global _registry
    _registry = registry


def reset_registry() -> None:
    """
    Reset the global registry (for testing purposes).
    """
    global _registry
    _registry = None

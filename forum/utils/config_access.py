"""
Config access helpers: load the forum YAML config and merge it over defaults.
"""

import copy
import os
from typing import Any, Dict, Optional

import yaml

from forum.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    'app': {
        'name': 'forum',
        'host': '0.0.0.0',
        'port': 5000,
        'debug': False,
    },
    'auth': {
        'cookie_name': 'accessToken',
        'algorithm': 'HS256',
    },
    'rbac': {},
    'seed': {
        'users': [],
    },
}


class ConfigNotReadyError(RuntimeError):
    pass


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the full forum config.

    The path comes from the argument, then FORUM_CONFIG; without either the
    defaults are returned.

    Raises:
        ConfigNotReadyError: If a named file is missing, unparseable or not
                             a mapping
    """
    config_path = config_path or os.environ.get('FORUM_CONFIG')
    if not config_path:
        return copy.deepcopy(DEFAULT_CONFIG)

    if not os.path.isfile(config_path):
        raise ConfigNotReadyError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigNotReadyError(f"Could not parse {config_path}: {e}") from e

    if not isinstance(loaded, dict):
        raise ConfigNotReadyError(f"{config_path} must contain a mapping")

    logger.info(f"Loaded config from {config_path}")
    return _merge(DEFAULT_CONFIG, loaded)


def get_rbac_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """The `rbac` section, with the auth cookie name folded in."""
    rbac = config.get('rbac') or {}
    auth = config.get('auth') or {}
    if not isinstance(rbac, dict) or not isinstance(auth, dict):
        raise ConfigNotReadyError("The rbac and auth sections must be mappings")
    rbac = dict(rbac)
    if auth.get('cookie_name') and 'cookie_name' not in rbac:
        rbac['cookie_name'] = auth['cookie_name']
    for key in ('login_path', 'forbidden_redirect'):
        if auth.get(key) and key not in rbac:
            rbac[key] = auth[key]
    return rbac

"""
RBAC Audit Logging - Security event logging for access control

This module provides audit logging for route and endpoint permission checks,
authentication outcomes and role changes.
"""

import json
from datetime import datetime, timezone
from typing import List, Optional

from forum.utils.logging import get_logger

# Dedicated audit logger
audit_logger = get_logger('rbac.audit')


def log_permission_check(
    user: str,
    permission: str,
    granted: bool,
    endpoint: Optional[str],
    role: Optional[str],
    missing: Optional[List[str]] = None,
    extra: Optional[dict] = None
) -> None:
    """
    Log a permission check event for audit trail.

    Args:
        user: Username of the user (or 'anonymous')
        permission: Permission, role or route requirement being checked
        granted: Whether access was granted
        endpoint: Request path or Flask endpoint name
        role: User's current role
        missing: Permissions that were missing (if denied)
        extra: Additional context information
    """
    timestamp = datetime.now(timezone.utc).isoformat()
    result = 'GRANTED' if granted else 'DENIED'

    log_entry = {
        'timestamp': timestamp,
        'user': user,
        'permission': permission,
        'result': result,
        'endpoint': endpoint,
        'role': role,
    }

    if missing:
        log_entry['missing_permissions'] = missing

    if extra:
        log_entry.update(extra)

    log_message = f"{user} | {permission} | {result} | {endpoint} | role: {role}"

    if granted:
        audit_logger.debug(log_message)
    else:
        audit_logger.warning(log_message)
        # Also log structured JSON for easier parsing
        audit_logger.info(f"AUDIT: {json.dumps(log_entry, default=str)}")


def log_authentication_event(
    user: str,
    event_type: str,
    success: bool,
    method: str,
    details: Optional[str] = None
) -> None:
    """
    Log an authentication event.

    Args:
        user: Username (or 'unknown')
        event_type: Type of event ('token_verify', 'login', 'logout')
        success: Whether the event succeeded
        method: Credential transport ('cookie', 'bearer')
        details: Additional details or error message
    """
    timestamp = datetime.now(timezone.utc).isoformat()
    result = 'SUCCESS' if success else 'FAILURE'

    log_entry = {
        'timestamp': timestamp,
        'event': event_type,
        'user': user,
        'result': result,
        'method': method,
    }

    if details:
        log_entry['details'] = details

    log_message = f"AUTH | {event_type} | {user} | {result} | method: {method}"
    if details:
        log_message += f" | {details}"

    if success:
        audit_logger.debug(log_message)
    else:
        audit_logger.warning(log_message)

    audit_logger.debug(f"AUDIT: {json.dumps(log_entry)}")


def log_role_change(
    actor: str,
    target: str,
    old_role: Optional[str],
    new_role: str,
    ip_address: str = 'unknown'
) -> None:
    """
    Log a role change performed by an administrator.

    Args:
        actor: Username of the user making the change
        target: Username of the user whose role changed
        old_role: Role before the change
        new_role: Role after the change
        ip_address: Client address as forwarded by the proxy
    """
    log_entry = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'event': 'role_update',
        'actor': actor,
        'target': target,
        'old_role': old_role,
        'new_role': new_role,
        'ip_address': ip_address,
    }

    audit_logger.warning(f"Role of {target} changed from {old_role} to {new_role} by {actor}")
    audit_logger.info(f"AUDIT: {json.dumps(log_entry)}")

"""
Service-layer exceptions. Each carries the HTTP status the app maps it to.
"""

from typing import Any, Dict, Optional


class ForumError(Exception):
    """Base class for errors surfaced to API clients."""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {'error': self.message}


class ValidationError(ForumError):
    status_code = 400


class PermissionDeniedError(ForumError):
    """Raised when a permission check fails."""
    status_code = 403

    def __init__(self, message: str, required_permission: Optional[str] = None, user_role: Optional[str] = None):
        super().__init__(message)
        self.required_permission = required_permission
        self.user_role = user_role


class ResourceNotFoundError(ForumError):
    status_code = 404


class RoleChangeError(ForumError):
    """Raised by the role change flow; status_code says which check failed."""
    status_code = 400

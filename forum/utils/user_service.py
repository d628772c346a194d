"""
UserService - forum accounts and the role change flow.

Accounts live in process memory; the service is the only writer. Role
changes go through change_role, which performs every check in one place:
authenticate the actor, authorize via change_user_role, validate the new
role, forbid self-change, then write the security log.
"""

import threading
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from forum.utils.errors import RoleChangeError, ValidationError
from forum.utils.logging import get_logger
from forum.utils.rbac.audit import log_role_change
from forum.utils.rbac.permission_enum import Permission
from forum.utils.rbac.permissions import has_permission
from forum.utils.rbac.roles import Role, VALID_ROLES, is_valid_role
from forum.utils.security_log import EVENT_ROLE_UPDATE, SEVERITY_MEDIUM, SecurityLogService

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class User:
    """A forum account. Frozen; updates produce a new instance."""

    id: str
    username: str
    email: str
    role: str = Role.USER.value
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def public_dict(self) -> Dict[str, Any]:
        return {'_id': self.id, 'username': self.username, 'email': self.email, 'role': self.role}


class UserService:
    """In-memory user store."""

    def __init__(self, security_log: Optional[SecurityLogService] = None):
        self._users: Dict[str, User] = {}
        self._lock = threading.Lock()
        self.security_log = security_log or SecurityLogService()

    def create_user(self, username: str, email: str, role: str = Role.USER.value,
                    user_id: Optional[str] = None) -> User:
        """
        Create an account.

        Raises:
            ValidationError: On a missing username/email, an invalid role,
                             or a duplicate email
        """
        if not username or not email:
            raise ValidationError("username and email are required")
        if not is_valid_role(role):
            raise ValidationError(f"Invalid role. Must be: {', '.join(VALID_ROLES)}")

        with self._lock:
            if any(u.email == email for u in self._users.values()):
                raise ValidationError(f"A user with email {email} already exists")
            user = User(id=str(user_id) if user_id else uuid.uuid4().hex, username=username, email=email, role=str(getattr(role, 'value', role)))
            self._users[user.id] = user

        logger.info(f"Created user {username} with role {user.role}")
        return user

    def get_user(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        return self._users.get(str(user_id))

    def find_by_email(self, email: str) -> Optional[User]:
        for user in self._users.values():
            if user.email == email:
                return user
        return None

    def list_users(self, role: Optional[str] = None) -> List[User]:
        users = sorted(self._users.values(), key=lambda u: u.created_at)
        if role:
            users = [u for u in users if u.role == role]
        return users

    def change_role(
        self,
        acting_user_id: Optional[str],
        target_user_id: str,
        new_role: Any,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> User:
        """
        Change another user's role.

        The acting user is looked up again here rather than trusted from
        the token, so a demoted admin loses the ability immediately.

        Raises:
            RoleChangeError: 401 actor unknown, 403 actor lacks
                             change_user_role, 400 invalid role or
                             self-change, 404 target unknown
        """
        if not acting_user_id:
            raise RoleChangeError("Unauthorized", status_code=401)

        # Every check reads the store under the same lock as the write
        with self._lock:
            acting_user = self.get_user(acting_user_id)
            if acting_user is None:
                raise RoleChangeError("Acting user not found", status_code=401)

            if not has_permission(acting_user, Permission.Users.CHANGE_ROLE):
                raise RoleChangeError("Forbidden: Insufficient permissions", status_code=403)

            if not is_valid_role(new_role):
                raise RoleChangeError("Invalid role. Must be: user, moderator, or admin", status_code=400)
            new_role = str(getattr(new_role, 'value', new_role))

            target_user = self.get_user(target_user_id)
            if target_user is None:
                raise RoleChangeError("User not found", status_code=404)

            if acting_user.id == target_user.id:
                raise RoleChangeError("Cannot change your own role", status_code=400)

            old_role = target_user.role
            updated = replace(target_user, role=new_role, updated_at=_now())
            self._users[updated.id] = updated

        self.security_log.create(
            event_type=EVENT_ROLE_UPDATE,
            username=acting_user.username,
            ip_address=ip_address,
            user_agent=user_agent,
            severity=SEVERITY_MEDIUM,
            details={
                'target_user_id': updated.id,
                'target_username': updated.username,
                'old_role': old_role,
                'new_role': new_role,
                'by': acting_user.username,
            },
        )
        log_role_change(acting_user.username, updated.username, old_role, new_role, ip_address or 'unknown')

        return updated

    def seed_users(self, records: Iterable[Dict[str, Any]]) -> List[Tuple[User, bool]]:
        """
        Insert or update users keyed by email.

        Returns:
            (user, created) pairs in input order
        """
        results = []
        for record in records:
            email = record.get('email')
            role = record.get('role', Role.USER.value)
            if not is_valid_role(role):
                raise ValidationError(f"Seed user {email} has invalid role '{role}'")

            with self._lock:
                existing = self.find_by_email(email) if email else None
                if existing is not None:
                    updated = replace(
                        existing,
                        username=record.get('username', existing.username),
                        role=role,
                        updated_at=_now(),
                    )
                    self._users[updated.id] = updated
            if existing is not None:
                logger.info(f"Updated seed user {updated.username}")
                results.append((updated, False))
            else:
                user = self.create_user(
                    username=record.get('username'),
                    email=email,
                    role=role,
                    user_id=record.get('id'),
                )
                results.append((user, True))
        return results

"""
ContentService - forums, threads and replies with ownership-aware checks.

Every mutating call takes the acting identity explicitly and checks it with
the RBAC evaluator before touching the store:
    create      <kind>:create permission
    edit        can_edit_resource(edit_own_<kind>, edit_any_<kind>)
    delete      can_delete_resource(delete_own_<kind>, delete_any_<kind>)
    lock        lock_forum / lock_thread
"""

import threading
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from forum.utils.errors import PermissionDeniedError, ResourceNotFoundError, ValidationError
from forum.utils.logging import get_logger
from forum.utils.rbac.permission_enum import Permission
from forum.utils.rbac.permissions import (
    can_delete_resource,
    can_edit_resource,
    has_permission,
)
from forum.utils.security_log import (
    EVENT_FORUM_LOCK,
    EVENT_THREAD_LOCK,
    SEVERITY_LOW,
    SecurityLogService,
)

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Forum:
    id: str
    title: str
    created_by: str
    description: str = ""
    locked: bool = False
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Thread:
    id: str
    forum_id: str
    title: str
    body: str
    created_by: str
    locked: bool = False
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Reply:
    id: str
    thread_id: str
    body: str
    created_by: str
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# kind -> (create, edit_own, edit_any, delete_own, delete_any)
_PERMISSIONS = {
    'forum': (Permission.Forums.CREATE, Permission.Forums.EDIT_OWN, Permission.Forums.EDIT_ANY,
              Permission.Forums.DELETE_OWN, Permission.Forums.DELETE_ANY),
    'thread': (Permission.Threads.CREATE, Permission.Threads.EDIT_OWN, Permission.Threads.EDIT_ANY,
               Permission.Threads.DELETE_OWN, Permission.Threads.DELETE_ANY),
    'reply': (Permission.Replies.CREATE, Permission.Replies.EDIT_OWN, Permission.Replies.EDIT_ANY,
              Permission.Replies.DELETE_OWN, Permission.Replies.DELETE_ANY),
}

_EDITABLE_FIELDS = {
    'forum': ('title', 'description'),
    'thread': ('title', 'body'),
    'reply': ('body',),
}


def _identity_id(identity: Any) -> Optional[str]:
    for name in ('_id', 'id'):
        value = identity.get(name) if isinstance(identity, dict) else getattr(identity, name, None)
        if value:
            return str(value)
    return None


class ContentService:
    """In-memory forum content store."""

    def __init__(self, security_log: Optional[SecurityLogService] = None):
        self._items: Dict[str, Dict[str, Any]] = {'forum': {}, 'thread': {}, 'reply': {}}
        self._lock = threading.Lock()
        self.security_log = security_log or SecurityLogService()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get(self, kind: str, item_id: str):
        item = self._items[kind].get(item_id)
        if item is None:
            raise ResourceNotFoundError(f"{kind.capitalize()} not found")
        return item

    def get_forum(self, forum_id: str) -> Forum:
        return self._get('forum', forum_id)

    def get_thread(self, thread_id: str) -> Thread:
        return self._get('thread', thread_id)

    def get_reply(self, reply_id: str) -> Reply:
        return self._get('reply', reply_id)

    def list_forums(self) -> List[Forum]:
        return sorted(self._items['forum'].values(), key=lambda f: f.created_at)

    def list_threads(self, forum_id: str) -> List[Thread]:
        self.get_forum(forum_id)
        return [t for t in self._items['thread'].values() if t.forum_id == forum_id]

    def list_replies(self, thread_id: str) -> List[Reply]:
        self.get_thread(thread_id)
        return [r for r in self._items['reply'].values() if r.thread_id == thread_id]

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _require(self, identity: Any, permission: Any, message: str) -> None:
        if not has_permission(identity, permission):
            raise PermissionDeniedError(message, required_permission=permission.value,
                                        user_role=getattr(identity, 'role', None))

    def _author(self, identity: Any) -> str:
        author = _identity_id(identity)
        if not author:
            raise PermissionDeniedError("Identity has no user id")
        return author

    def create_forum(self, identity: Any, title: str, description: str = "") -> Forum:
        self._require(identity, Permission.Forums.CREATE, "Forbidden: You do not have permission to create forums")
        if not title:
            raise ValidationError("title is required")

        forum = Forum(id=uuid.uuid4().hex, title=title, description=description,
                      created_by=self._author(identity))
        with self._lock:
            self._items['forum'][forum.id] = forum
        return forum

    def create_thread(self, identity: Any, forum_id: str, title: str, body: str = "") -> Thread:
        self._require(identity, Permission.Threads.CREATE, "Forbidden: You do not have permission to create threads")
        if not title:
            raise ValidationError("title is required")
        author = self._author(identity)

        with self._lock:
            forum = self.get_forum(forum_id)
            if forum.locked and not has_permission(identity, Permission.Moderation.MODERATE_CONTENT):
                raise PermissionDeniedError("Forum is locked")
            thread = Thread(id=uuid.uuid4().hex, forum_id=forum_id, title=title, body=body, created_by=author)
            self._items['thread'][thread.id] = thread
        return thread

    def create_reply(self, identity: Any, thread_id: str, body: str) -> Reply:
        self._require(identity, Permission.Replies.CREATE, "Forbidden: You do not have permission to reply")
        if not body:
            raise ValidationError("body is required")
        author = self._author(identity)

        with self._lock:
            thread = self.get_thread(thread_id)
            if thread.locked and not has_permission(identity, Permission.Moderation.MODERATE_CONTENT):
                raise PermissionDeniedError("Thread is locked")
            reply = Reply(id=uuid.uuid4().hex, thread_id=thread_id, body=body, created_by=author)
            self._items['reply'][reply.id] = reply
        return reply

    # ------------------------------------------------------------------
    # Edit / delete
    # ------------------------------------------------------------------

    def _update(self, kind: str, identity: Any, item_id: str, changes: Dict[str, Any]):
        _, edit_own, edit_any, _, _ = _PERMISSIONS[kind]
        allowed = {k: v for k, v in changes.items() if k in _EDITABLE_FIELDS[kind] and v is not None}

        # Read, check and write under one lock
        with self._lock:
            item = self._get(kind, item_id)
            if not can_edit_resource(identity, item, edit_own, edit_any):
                raise PermissionDeniedError(f"Forbidden: You cannot edit this {kind}",
                                            required_permission=edit_any.value)
            if not allowed:
                raise ValidationError(f"Nothing to update; editable fields: {', '.join(_EDITABLE_FIELDS[kind])}")

            updated = replace(item, updated_at=_now(), **allowed)
            self._items[kind][item_id] = updated
        return updated

    def _delete(self, kind: str, identity: Any, item_id: str) -> None:
        _, _, _, delete_own, delete_any = _PERMISSIONS[kind]

        with self._lock:
            item = self._get(kind, item_id)
            if not can_delete_resource(identity, item, delete_own, delete_any):
                raise PermissionDeniedError(f"Forbidden: You cannot delete this {kind}",
                                            required_permission=delete_any.value)

            del self._items[kind][item_id]
            # cascade
            if kind == 'forum':
                thread_ids = [t.id for t in self._items['thread'].values() if t.forum_id == item_id]
            elif kind == 'thread':
                thread_ids = [item_id]
            else:
                thread_ids = []
            for thread_id in thread_ids:
                self._items['thread'].pop(thread_id, None)
                for reply_id in [r.id for r in self._items['reply'].values() if r.thread_id == thread_id]:
                    del self._items['reply'][reply_id]

        logger.info(f"Deleted {kind} {item_id}")

    def update_forum(self, identity: Any, forum_id: str, **changes) -> Forum:
        return self._update('forum', identity, forum_id, changes)

    def delete_forum(self, identity: Any, forum_id: str) -> None:
        self._delete('forum', identity, forum_id)

    def update_thread(self, identity: Any, thread_id: str, **changes) -> Thread:
        return self._update('thread', identity, thread_id, changes)

    def delete_thread(self, identity: Any, thread_id: str) -> None:
        self._delete('thread', identity, thread_id)

    def update_reply(self, identity: Any, reply_id: str, **changes) -> Reply:
        return self._update('reply', identity, reply_id, changes)

    def delete_reply(self, identity: Any, reply_id: str) -> None:
        self._delete('reply', identity, reply_id)

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _set_locked(self, kind: str, identity: Any, item_id: str, locked: bool, permission, event_type: str):
        if not isinstance(locked, bool):
            raise ValidationError("lock must be true or false")
        self._require(identity, permission, f"Forbidden: You do not have permission to lock {kind}s")
        with self._lock:
            item = self._get(kind, item_id)
            updated = replace(item, locked=locked, updated_at=_now())
            self._items[kind][item_id] = updated

        self.security_log.create(
            event_type=event_type,
            username=getattr(identity, 'username', None) or _identity_id(identity),
            severity=SEVERITY_LOW,
            details={f'{kind}_id': item_id, 'locked': locked},
        )
        return updated

    def lock_forum(self, identity: Any, forum_id: str, locked: bool = True) -> Forum:
        return self._set_locked('forum', identity, forum_id, locked, Permission.Forums.LOCK, EVENT_FORUM_LOCK)

    def lock_thread(self, identity: Any, thread_id: str, locked: bool = True) -> Thread:
        return self._set_locked('thread', identity, thread_id, locked, Permission.Threads.LOCK, EVENT_THREAD_LOCK)

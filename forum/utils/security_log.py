"""
Security log - persisted record of security-relevant changes (role updates,
bans, lock changes) for the admin log view.
"""

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from forum.utils.logging import get_logger

logger = get_logger(__name__)

SEVERITY_LOW = "LOW"
SEVERITY_MEDIUM = "MEDIUM"
SEVERITY_HIGH = "HIGH"

EVENT_ROLE_UPDATE = "ROLE_UPDATE"
EVENT_FORUM_LOCK = "FORUM_LOCK"
EVENT_THREAD_LOCK = "THREAD_LOCK"


@dataclass
class SecurityLogEntry:
    event_type: str
    username: Optional[str]
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    severity: str = SEVERITY_LOW
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SecurityLogService:
    """Append-only, in-process security log."""

    def __init__(self):
        self._entries: List[SecurityLogEntry] = []
        self._lock = threading.Lock()

    def create(
        self,
        event_type: str,
        username: Optional[str],
        details: Optional[Dict[str, Any]] = None,
        severity: str = SEVERITY_LOW,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SecurityLogEntry:
        entry = SecurityLogEntry(
            event_type=event_type,
            username=username,
            ip_address=ip_address or "unknown",
            user_agent=user_agent or "unknown",
            severity=severity,
            details=dict(details or {}),
        )
        with self._lock:
            self._entries.append(entry)
        logger.info(f"Security event {event_type} by {username} ({severity})")
        return entry

    def list_entries(self, event_type: Optional[str] = None, limit: Optional[int] = None) -> List[SecurityLogEntry]:
        """Most recent first. A negative limit returns nothing."""
        with self._lock:
            entries = list(reversed(self._entries))
        if event_type:
            entries = [e for e in entries if e.event_type == event_type]
        if limit is not None:
            entries = entries[:max(limit, 0)]
        return entries

    def __len__(self) -> int:
        return len(self._entries)

"""Operator notifications: fire-and-forget, auto-dismissed after a few seconds."""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

SEVERITIES = ("success", "info", "warning", "error")

_LOG_LEVEL = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class Notification:
    id: str
    severity: str
    message: str
    details: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    created_mono: float = field(default_factory=time.monotonic, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity,
            "message": self.message,
            "details": self.details,
            "createdAt": self.created_at.isoformat().replace("+00:00", "Z"),
        }


class NotificationCenter:
    """Keeps the notifications the operator can currently see.

    notify() never raises; a sink problem must not break a scan attempt.
    """

    def __init__(self, ttl_seconds: float = 5.0, max_items: int = 50,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._items: Deque[Notification] = deque(maxlen=max_items)
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    def notify(self, severity: str, message: str, details: Optional[str] = None) -> Optional[Notification]:
        try:
            if severity not in SEVERITIES:
                severity = "info"
            note = Notification(
                id=str(next(self._ids)),
                severity=severity,
                message=message,
                details=details,
                created_mono=self._clock(),
            )
            logger.log(_LOG_LEVEL[severity], "%s%s", message, f": {details}" if details else "")
            with self._lock:
                self._items.append(note)
            return note
        except Exception:  # pragma: no cover
            logger.exception("Failed to record notification %r", message)
            return None

    def _expire(self) -> None:
        cutoff = self._clock() - self.ttl_seconds
        while self._items and self._items[0].created_mono <= cutoff:
            self._items.popleft()

    def active(self) -> List[Notification]:
        with self._lock:
            self._expire()
            return list(self._items)

    def dismiss(self, notification_id: str) -> bool:
        with self._lock:
            for note in list(self._items):
                if note.id == str(notification_id):
                    self._items.remove(note)
                    return True
        return False

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


__all__ = ["Notification", "NotificationCenter", "SEVERITIES"]

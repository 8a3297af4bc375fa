"""
Notification store — emitted notifications and their sent/pending state.
In-memory stand-in for a smart_notifications table; the delivery
collaborator reads pending() and calls ack().
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from smart_notifications.engine.errors import NotificationNotFound
from smart_notifications.engine.models import SmartNotification

logger = logging.getLogger(__name__)


class NotificationStore(ABC):
    @abstractmethod
    def enqueue(self, notification: SmartNotification) -> str:
        """Persist a notification. Raises StorageError on failure."""

    @abstractmethod
    def get(self, notification_id: str) -> SmartNotification:
        """Raises NotificationNotFound for unknown ids."""

    @abstractmethod
    def pending(self, user_id: str, now: datetime) -> List[SmartNotification]:
        """Unsent notifications with scheduled_for <= now, oldest first."""

    @abstractmethod
    def ack(self, notification_id: str, at: datetime) -> bool:
        """Mark sent. True on the first ack, False if it was already sent."""

    @abstractmethod
    def history(self, user_id: str, limit: int = 20, type: Optional[str] = None) -> List[SmartNotification]:
        """Newest first."""


class InMemoryNotificationStore(NotificationStore):
    def __init__(self):
        self._log: List[SmartNotification] = []
        self._by_id: Dict[str, SmartNotification] = {}
        self._lock = threading.Lock()

    def enqueue(self, notification):
        with self._lock:
            self._log.append(notification)
            self._by_id[notification.id] = notification
        return notification.id

    def get(self, notification_id):
        try:
            return self._by_id[notification_id]
        except KeyError:
            raise NotificationNotFound(notification_id) from None

    def pending(self, user_id, now):
        with self._lock:
            due = [n for n in self._log if n.user_id == user_id and n.is_due(now)]
        return sorted(due, key=lambda n: n.scheduled_for)

    def ack(self, notification_id, at):
        notification = self.get(notification_id)
        with self._lock:
            changed = notification.mark_sent(at)
        if not changed:
            logger.debug("Notification %s already acknowledged", notification_id)
        return changed

    def history(self, user_id, limit=20, type=None):
        with self._lock:
            results = [n for n in self._log if n.user_id == user_id]
        if type:
            results = [n for n in results if n.type == type]
        results.sort(key=lambda n: n.created_at, reverse=True)
        return results[:limit]

    def get_all(self) -> List[SmartNotification]:
        with self._lock:
            return list(self._log)

    def stats(self) -> dict:
        with self._lock:
            log = list(self._log)
        total = len(log)
        sent = sum(1 for n in log if n.sent)
        by_type: Dict[str, int] = {}
        for n in log:
            by_type[n.type] = by_type.get(n.type, 0) + 1
        return {
            "total": total,
            "sent": sent,
            "pending": total - sent,
            "by_type": by_type,
            "delivery_rate": round(sent / max(total, 1) * 100, 1),
        }

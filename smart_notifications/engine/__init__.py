"""
Event -> insight -> notification core.
"""

from smart_notifications.engine.errors import (
    NotificationNotFound,
    SmartNotificationError,
    StorageError,
    ValidationError,
)
from smart_notifications.engine.insights import InsightEngine
from smart_notifications.engine.models import (
    EventType,
    InsightType,
    NotificationRule,
    Priority,
    RuleType,
    SmartNotification,
    UserEvent,
    UserInsight,
)
from smart_notifications.engine.notifications import InMemoryNotificationStore, NotificationStore
from smart_notifications.engine.rules import RuleRegistry
from smart_notifications.engine.scheduler import NotificationScheduler
from smart_notifications.engine.store import (
    CooldownStore,
    EventStore,
    InMemoryCooldownStore,
    InMemoryEventStore,
    RecentEventCache,
)
from smart_notifications.engine.tracking import EventTracker

__all__ = [
    "CooldownStore",
    "EventStore",
    "EventTracker",
    "EventType",
    "InMemoryCooldownStore",
    "InMemoryEventStore",
    "InMemoryNotificationStore",
    "InsightEngine",
    "InsightType",
    "NotificationNotFound",
    "NotificationRule",
    "NotificationScheduler",
    "NotificationStore",
    "Priority",
    "RecentEventCache",
    "RuleRegistry",
    "RuleType",
    "SmartNotification",
    "SmartNotificationError",
    "StorageError",
    "UserEvent",
    "UserInsight",
    "ValidationError",
]

"""
Notification Scheduler — orchestrates all components for one user.

events -> InsightEngine.derive -> rule conditions (cooldown-gated) ->
SmartNotification -> NotificationStore.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from smart_notifications.engine.config import EngineConfig
from smart_notifications.engine.errors import StorageError
from smart_notifications.engine.insights import InsightEngine
from smart_notifications.engine.models import (
    NotificationRule,
    Priority,
    SmartNotification,
    UserEvent,
    UserInsight,
    as_utc,
    utcnow,
)
from smart_notifications.engine.notifications import InMemoryNotificationStore, NotificationStore
from smart_notifications.engine.rules import RuleRegistry, title_for
from smart_notifications.engine.store import (
    CooldownStore,
    EventStore,
    InMemoryCooldownStore,
    InMemoryEventStore,
)

logger = logging.getLogger(__name__)


class NotificationScheduler:
    def __init__(
        self,
        events: Optional[EventStore] = None,
        registry: Optional[RuleRegistry] = None,
        notifications: Optional[NotificationStore] = None,
        cooldowns: Optional[CooldownStore] = None,
        insights: Optional[InsightEngine] = None,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config or EngineConfig()
        self.events = events or InMemoryEventStore()
        self.registry = registry or RuleRegistry(
            rules_file=self.config.rules_file,
            currency_symbol=self.config.currency_symbol,
        )
        self.notifications = notifications or InMemoryNotificationStore()
        self.cooldowns = cooldowns or InMemoryCooldownStore()
        self.insights = insights or InsightEngine()
        self.clock = clock

    def _now(self, now: Optional[datetime]) -> datetime:
        return as_utc(now) if now is not None else self.clock()

    def recent_events(self, user_id: str, now: Optional[datetime] = None) -> List[UserEvent]:
        """The bounded window derivation runs over. StorageError propagates."""
        now = self._now(now)
        since = now - timedelta(days=self.config.event_window_days)
        try:
            return self.events.query(user_id, since=since, limit=self.config.event_window_limit)
        except StorageError:
            logger.error("Event store unavailable while reading events for user %s", user_id)
            raise

    def insights_for(self, user_id: str, now: Optional[datetime] = None) -> List[UserInsight]:
        now = self._now(now)
        return self.insights.derive(self.recent_events(user_id, now), now=now)

    def run(self, user_id: str, now: Optional[datetime] = None) -> List[SmartNotification]:
        now = self._now(now)
        events = self.recent_events(user_id, now)
        insights = self.insights.derive(events, now=now)

        emitted: List[SmartNotification] = []
        for rule in self.registry.rules_for(user_id):
            notification = self._try_fire(rule, user_id, insights, events, now)
            if notification is not None:
                emitted.append(notification)

        for notification in emitted:
            self._enqueue(notification)
        return emitted

    def _try_fire(self, rule, user_id, insights, events, now) -> Optional[SmartNotification]:
        # Cooldown check, evaluation and mark happen under one lock per (rule, user)
        with self.cooldowns.guard(rule.id, user_id):
            if self.cooldowns.in_cooldown(rule.id, user_id, now, rule.cooldown):
                logger.debug("Rule %s cooling down for user %s", rule.id, user_id)
                return None
            if not self.registry.evaluate(rule, insights, events, now):
                return None
            notification = self._build(rule, user_id, insights, events, now)
            self.cooldowns.mark_triggered(rule.id, user_id, now)

        logger.info("Rule %s fired for user %s (priority=%s)", rule.id, user_id, rule.priority.value)
        return notification

    def _build(self, rule: NotificationRule, user_id: str, insights: Sequence[UserInsight],
               events: Sequence[UserEvent], now: datetime) -> SmartNotification:
        return SmartNotification(
            user_id=user_id,
            type=rule.type.value,
            title=title_for(rule.type),
            message=self.registry.render(rule, insights, events, now),
            priority=rule.priority,
            scheduled_for=now,
            created_at=now,
            data={
                "ruleId": rule.id,
                "insights": [i.to_dict() for i in insights],
                "eventCount": len(events),
            },
        )

    def _enqueue(self, notification: SmartNotification) -> None:
        try:
            self.notifications.enqueue(notification)
        except StorageError:
            logger.warning("Could not persist notification %s for user %s",
                           notification.id, notification.user_id, exc_info=True)

    def schedule_custom(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        scheduled_for: datetime,
        priority: Priority = Priority.MEDIUM,
        data: Optional[Dict[str, Any]] = None,
    ) -> SmartNotification:
        """Queue an arbitrary notification for later delivery. No rule or cooldown involved."""
        notification = SmartNotification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            priority=Priority(priority),
            scheduled_for=as_utc(scheduled_for),
            created_at=self.clock(),
            data=dict(data or {}),
        )
        self.notifications.enqueue(notification)
        return notification

    def pending(self, user_id: str, now: Optional[datetime] = None) -> List[SmartNotification]:
        return self.notifications.pending(user_id, self._now(now))

    def ack(self, notification_id: str, now: Optional[datetime] = None) -> bool:
        return self.notifications.ack(notification_id, self._now(now))

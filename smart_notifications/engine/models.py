"""
Core records flowing through the event -> insight -> notification pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a datetime or ISO-8601 string. Returns None when it can't."""
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except ValueError:
        return None


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class EventType(str, Enum):
    PAGE_VIEW = "page_view"
    BUTTON_CLICK = "button_click"
    PAYMENT_INITIATED = "payment_initiated"
    PAYMENT_COMPLETED = "payment_completed"
    SAVINGS_GOAL_SET = "savings_goal_set"
    APP_OPENED = "app_opened"
    FEATURE_USED = "feature_used"


class InsightType(str, Enum):
    SAVINGS_PATTERN = "savings_pattern"
    USAGE_FREQUENCY = "usage_frequency"
    PAYMENT_BEHAVIOR = "payment_behavior"
    ENGAGEMENT_SCORE = "engagement_score"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RuleType(str, Enum):
    SAVINGS_REMINDER = "savings_reminder"
    GOAL_PROGRESS = "goal_progress"
    LOW_ACTIVITY = "low_activity"
    PAYMENT_SUCCESS = "payment_success"
    MILESTONE_REACHED = "milestone_reached"


@dataclass(frozen=True)
class UserEvent:
    user_id: str
    event_type: EventType
    session_id: str
    timestamp: datetime
    event_data: Mapping[str, Any] = field(default_factory=dict)
    user_agent: Optional[str] = None
    page: Optional[str] = None
    id: str = field(default_factory=lambda: _new_id("evt"))

    def __post_init__(self):
        # read-only once built; naive timestamps are taken as UTC
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))
        object.__setattr__(self, "event_data", MappingProxyType(dict(self.event_data)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "eventType": self.event_type.value,
            "eventData": dict(self.event_data),
            "timestamp": _iso(self.timestamp),
            "sessionId": self.session_id,
            "userAgent": self.user_agent,
            "page": self.page,
        }


@dataclass(frozen=True)
class UserInsight:
    user_id: str
    insight_type: InsightType
    insight_data: Dict[str, Any]
    confidence: float
    generated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "insightType": self.insight_type.value,
            "insightData": dict(self.insight_data),
            "confidence": self.confidence,
            "generatedAt": _iso(self.generated_at),
        }


@dataclass
class NotificationRule:
    """A configured decision unit. Condition and message live in rules.py, keyed by type."""
    id: str
    type: RuleType
    priority: Priority
    cooldown_hours: float
    user_id: str = "all"

    @property
    def cooldown(self) -> timedelta:
        return timedelta(hours=self.cooldown_hours)

    def applies_to(self, user_id: str) -> bool:
        return self.user_id == "all" or self.user_id == user_id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationRule":
        return cls(
            id=data["id"],
            type=RuleType(data["type"]),
            priority=Priority(data.get("priority", "medium")),
            cooldown_hours=float(data.get("cooldown_hours", data.get("cooldown", 24))),
            user_id=data.get("user_id", data.get("userId", "all")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type.value,
            "priority": self.priority.value,
            "cooldown": self.cooldown_hours,
        }


@dataclass
class SmartNotification:
    user_id: str
    type: str
    title: str
    message: str
    priority: Priority
    scheduled_for: datetime
    data: Dict[str, Any] = field(default_factory=dict)
    sent: bool = False
    sent_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: _new_id("notif"))

    def is_due(self, now: datetime) -> bool:
        return not self.sent and self.scheduled_for <= now

    def mark_sent(self, at: datetime) -> bool:
        """Flip sent exactly once. Returns False if it was already sent."""
        if self.sent:
            return False
        self.sent = True
        self.sent_at = at
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "priority": self.priority.value,
            "data": self.data,
            "scheduledFor": _iso(self.scheduled_for),
            "sent": self.sent,
            "sentAt": _iso(self.sent_at),
            "createdAt": _iso(self.created_at),
        }

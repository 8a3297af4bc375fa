"""
Event ingestion boundary.

Validates incoming tracking payloads, stamps them with an id and a
timestamp and appends them to the EventStore. A storage failure is logged
and dropped so it never breaks the user action that produced the event.
"""

import logging
import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from smart_notifications.engine.errors import StorageError, ValidationError
from smart_notifications.engine.models import EventType, UserEvent, utcnow
from smart_notifications.engine.store import EventStore, RecentEventCache

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"


def new_session_id() -> str:
    return f"sess_{uuid.uuid4().hex[:12]}"


def build_event(payload: Mapping, timestamp: datetime, default_session: Optional[str] = None) -> UserEvent:
    """Turn a raw payload into a UserEvent or raise ValidationError."""
    user_id = payload.get("userId", payload.get("user_id"))
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("userId is required")

    raw_type = payload.get("eventType", payload.get("event_type"))
    try:
        event_type = EventType(raw_type)
    except ValueError:
        raise ValidationError(f"Unknown eventType '{raw_type}'") from None

    event_data = payload.get("eventData", payload.get("event_data")) or {}
    if not isinstance(event_data, Mapping):
        raise ValidationError("eventData must be an object")

    session_id = payload.get("sessionId", payload.get("session_id")) or default_session or new_session_id()
    return UserEvent(
        user_id=user_id,
        event_type=event_type,
        event_data=dict(event_data),
        session_id=session_id,
        timestamp=timestamp,
        user_agent=payload.get("userAgent", payload.get("user_agent")),
        page=payload.get("page"),
    )


class EventTracker:
    def __init__(
        self,
        events: EventStore,
        cache: Optional[RecentEventCache] = None,
        clock: Callable[[], datetime] = utcnow,
        session_id: Optional[str] = None,
    ):
        self.events = events
        self.cache = cache
        self.clock = clock
        self.session_id = session_id or new_session_id()

    def track(self, payload: Mapping) -> Optional[UserEvent]:
        """
        Returns the stored event, or None if the store rejected the write.
        Raises ValidationError for malformed payloads.
        """
        event = build_event(payload, self.clock(), default_session=self.session_id)
        try:
            self.events.append(event)
        except StorageError:
            logger.warning("Dropping %s event for user %s: event store unavailable",
                           event.event_type.value, event.user_id, exc_info=True)
            return None
        if self.cache is not None:
            self.cache.push(event)
        return event

    def track_event(self, event_type: str, event_data: Dict[str, Any],
                    user_id: Optional[str] = None, page: Optional[str] = None) -> Optional[UserEvent]:
        return self.track({
            "userId": user_id or ANONYMOUS,
            "eventType": event_type,
            "eventData": event_data,
            "page": page,
        })

    def track_page_view(self, page: str, user_id: Optional[str] = None):
        return self.track_event("page_view", {"page": page}, user_id, page=page)

    def track_button_click(self, button_name: str, user_id: Optional[str] = None):
        return self.track_event("button_click", {"buttonName": button_name}, user_id)

    def track_payment_initiated(self, amount: float, user_id: Optional[str] = None):
        return self.track_event("payment_initiated", {"amount": amount}, user_id)

    def track_payment_completed(self, amount: float, reference: str, user_id: Optional[str] = None):
        return self.track_event("payment_completed", {"amount": amount, "reference": reference}, user_id)

    def track_savings_goal_set(self, goal_amount: float, target_date: str, user_id: Optional[str] = None):
        return self.track_event("savings_goal_set", {"goalAmount": goal_amount, "targetDate": target_date}, user_id)

    def track_feature_used(self, feature_name: str, user_id: Optional[str] = None):
        return self.track_event("feature_used", {"featureName": feature_name}, user_id)

    def track_app_opened(self, user_id: Optional[str] = None):
        return self.track_event("app_opened", {}, user_id)

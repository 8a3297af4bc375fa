"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from smart_notifications.engine.models import EventType, UserEvent
from smart_notifications.engine.scheduler import NotificationScheduler
from smart_notifications.engine.tracking import EventTracker

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_event(event_type, at: datetime, user_id: str = "user_1", **event_data) -> UserEvent:
    return UserEvent(
        user_id=user_id,
        event_type=EventType(event_type),
        session_id="sess_test",
        timestamp=at,
        event_data=event_data,
    )


def days_ago(days: float, now: datetime = NOW) -> datetime:
    return now - timedelta(days=days)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return NotificationScheduler(clock=clock)


@pytest.fixture
def tracker(scheduler, clock):
    return EventTracker(scheduler.events, clock=clock)


@pytest.fixture
def weekly_saver():
    """Three ₦5,000 contributions exactly 7 days apart."""
    start = days_ago(30)
    return [
        make_event("payment_completed", start + timedelta(days=7 * i), amount=5000)
        for i in range(3)
    ]

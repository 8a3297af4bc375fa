"""Tests for the notification scheduler: firing, cooldowns, concurrency, failures."""

import threading
from datetime import timedelta

import pytest

from conftest import NOW, FakeClock, days_ago, make_event
from smart_notifications.engine.config import EngineConfig
from smart_notifications.engine.errors import StorageError
from smart_notifications.engine.models import Priority
from smart_notifications.engine.notifications import InMemoryNotificationStore
from smart_notifications.engine.rules import RuleRegistry
from smart_notifications.engine.scheduler import NotificationScheduler
from smart_notifications.engine.store import InMemoryEventStore


class BrokenEventStore(InMemoryEventStore):
    def query(self, user_id, since=None, limit=None, event_type=None):
        raise StorageError("database is down")


class BrokenNotificationStore(InMemoryNotificationStore):
    def enqueue(self, notification):
        raise StorageError("database is down")


def _load(scheduler, events):
    for e in events:
        scheduler.events.append(e)


def _milestone_events():
    # total 11,000: inside the 10,000 band, payments spaced a day apart so
    # the savings reminder stays quiet
    return [
        make_event("payment_completed", days_ago(3 - i), amount=a)
        for i, a in enumerate((5000, 3000, 3000))
    ]


class TestRun:
    def test_no_events_no_notifications(self, scheduler):
        assert scheduler.run("user_1") == []

    def test_savings_reminder_fires(self, scheduler, weekly_saver):
        _load(scheduler, weekly_saver)
        emitted = scheduler.run("user_1")
        assert [n.type for n in emitted] == ["savings_reminder"]
        n = emitted[0]
        assert n.title == "💰 Savings Reminder"
        assert n.priority == Priority.MEDIUM
        assert n.scheduled_for == NOW
        assert n.sent is False
        assert n.data["ruleId"] == "savings_reminder_weekly"
        assert n.data["eventCount"] == 3
        assert n.data["insights"][0]["insightType"] == "savings_pattern"
        assert "₦5,000" in n.message

    def test_emitted_notifications_are_enqueued(self, scheduler, weekly_saver):
        _load(scheduler, weekly_saver)
        emitted = scheduler.run("user_1")
        assert scheduler.pending("user_1") == emitted

    def test_milestone_fires(self, scheduler):
        _load(scheduler, _milestone_events())
        emitted = scheduler.run("user_1")
        assert [n.type for n in emitted] == ["milestone_reached"]
        assert emitted[0].priority == Priority.HIGH

    def test_milestone_outside_band_does_not_fire(self, scheduler):
        _load(scheduler, [make_event("payment_completed", days_ago(3 - i), amount=4000) for i in range(3)])
        assert scheduler.run("user_1") == []

    def test_goal_progress_fires_seven_days_out(self, scheduler):
        target = (NOW + timedelta(days=7)).isoformat()
        _load(scheduler, [make_event("savings_goal_set", days_ago(1), goalAmount=20000, targetDate=target)])
        emitted = scheduler.run("user_1")
        assert [n.type for n in emitted] == ["goal_progress"]
        assert "due in 7 days" in emitted[0].message

    def test_goal_progress_quiet_eight_days_out(self, scheduler):
        target = (NOW + timedelta(days=8)).isoformat()
        _load(scheduler, [make_event("savings_goal_set", days_ago(1), goalAmount=20000, targetDate=target)])
        assert scheduler.run("user_1") == []

    def test_high_priority_first(self, scheduler, weekly_saver):
        target = (NOW + timedelta(days=3)).isoformat()
        _load(scheduler, weekly_saver + [
            make_event("savings_goal_set", days_ago(1), goalAmount=20000, targetDate=target),
        ])
        assert [n.type for n in scheduler.run("user_1")] == ["goal_progress", "savings_reminder"]

    def test_naive_event_timestamps(self, scheduler, weekly_saver):
        naive = [make_event("payment_completed", e.timestamp.replace(tzinfo=None), amount=5000)
                 for e in weekly_saver]
        _load(scheduler, naive)
        emitted = scheduler.run("user_1")
        assert [n.type for n in emitted] == ["savings_reminder"]
        assert emitted[0].data["eventCount"] == 3

    def test_old_events_fall_outside_window(self, clock):
        scheduler = NotificationScheduler(clock=clock, config=EngineConfig(event_window_days=10))
        _load(scheduler, _milestone_events())
        _load(scheduler, [make_event("payment_completed", days_ago(40), amount=99999)])
        assert len(scheduler.recent_events("user_1")) == 3

    def test_window_limit_keeps_most_recent(self, clock):
        scheduler = NotificationScheduler(clock=clock, config=EngineConfig(event_window_limit=2))
        _load(scheduler, [make_event("page_view", days_ago(5 - i)) for i in range(5)])
        window = scheduler.recent_events("user_1")
        assert [e.timestamp for e in window] == [days_ago(2), days_ago(1)]


class TestCooldown:
    def test_second_run_within_hour_is_suppressed(self, scheduler, clock, weekly_saver):
        _load(scheduler, weekly_saver)
        first = scheduler.run("user_1")
        clock.advance(minutes=50)
        second = scheduler.run("user_1")
        assert len(first) + len(second) == 1

    def test_fires_again_after_cooldown(self, scheduler, clock, weekly_saver):
        _load(scheduler, weekly_saver)
        assert len(scheduler.run("user_1")) == 1
        clock.advance(hours=24)
        assert len(scheduler.run("user_1")) == 1

    def test_cooldown_is_per_user(self, scheduler, weekly_saver):
        other = [make_event("payment_completed", e.timestamp, user_id="user_2", amount=5000)
                 for e in weekly_saver]
        _load(scheduler, weekly_saver + other)
        assert len(scheduler.run("user_1")) == 1
        assert len(scheduler.run("user_2")) == 1

    def test_condition_false_does_not_start_cooldown(self, scheduler, clock, weekly_saver):
        _load(scheduler, weekly_saver[:2])
        assert scheduler.run("user_1") == []
        scheduler.events.append(weekly_saver[2])
        assert len(scheduler.run("user_1")) == 1

    def test_concurrent_runs_fire_once(self, weekly_saver):
        scheduler = NotificationScheduler(clock=FakeClock())
        _load(scheduler, weekly_saver)
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.extend(scheduler.run("user_1"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(results) == 1
        assert len(scheduler.notifications.get_all()) == 1


class TestScopedRules:
    def test_rule_for_other_user_is_skipped(self, clock):
        registry = RuleRegistry(include_defaults=False)
        registry.add_rule({"id": "vip_milestone", "user_id": "vip", "type": "milestone_reached",
                           "priority": "high", "cooldown_hours": 1})
        scheduler = NotificationScheduler(registry=registry, clock=clock)
        _load(scheduler, _milestone_events())
        assert scheduler.run("user_1") == []


class TestFailures:
    def test_event_store_outage_surfaces(self, clock):
        scheduler = NotificationScheduler(events=BrokenEventStore(), clock=clock)
        with pytest.raises(StorageError):
            scheduler.run("user_1")

    def test_notification_store_outage_is_logged(self, clock, weekly_saver, caplog):
        scheduler = NotificationScheduler(notifications=BrokenNotificationStore(), clock=clock)
        _load(scheduler, weekly_saver)
        emitted = scheduler.run("user_1")
        assert len(emitted) == 1
        assert "Could not persist notification" in caplog.text


class TestCustomAndDelivery:
    def test_schedule_custom_waits_until_due(self, scheduler, clock):
        n = scheduler.schedule_custom(
            "user_1", "payment_success", "✅ Payment Successful", "Paid!",
            NOW + timedelta(hours=2), priority="high", data={"ref": "abc"},
        )
        assert n.priority == Priority.HIGH
        assert scheduler.pending("user_1") == []
        clock.advance(hours=2)
        assert scheduler.pending("user_1") == [n]

    def test_ack_once(self, scheduler, weekly_saver):
        _load(scheduler, weekly_saver)
        n = scheduler.run("user_1")[0]
        assert scheduler.ack(n.id) is True
        assert scheduler.ack(n.id) is False
        assert scheduler.pending("user_1") == []

    def test_insights_for(self, scheduler, weekly_saver):
        _load(scheduler, weekly_saver)
        insights = scheduler.insights_for("user_1")
        assert [i.insight_type.value for i in insights] == ["savings_pattern", "payment_behavior"]

"""
Rule Registry — the catalog of notification rules.

Rules are plain data (id, type, priority, cooldown, scope). What a rule
checks and what it says are pure functions looked up by rule type in
CONDITIONS / MESSAGES, so a rule can be serialised, audited and tested
without the scheduler. Extra rules can be loaded from a JSON file.
"""

import json
import logging
import math
import os
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Union

from smart_notifications.engine.models import (
    EventType,
    InsightType,
    NotificationRule,
    Priority,
    RuleType,
    UserEvent,
    UserInsight,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

MILESTONES = (10000, 25000, 50000, 100000, 250000, 500000)
MILESTONE_BAND = 1.1
GOAL_WINDOW_DAYS = 7
SAVINGS_OVERDUE_FACTOR = 1.5
INACTIVITY_FACTOR = 3

PRIORITY_RANK = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}

DEFAULT_RULES = [
    {"id": "savings_reminder_weekly", "user_id": "all", "type": "savings_reminder",
     "priority": "medium", "cooldown_hours": 24},
    {"id": "goal_progress_check", "user_id": "all", "type": "goal_progress",
     "priority": "high", "cooldown_hours": 12},
    {"id": "low_activity_reminder", "user_id": "all", "type": "low_activity",
     "priority": "low", "cooldown_hours": 48},
    {"id": "milestone_reached", "user_id": "all", "type": "milestone_reached",
     "priority": "high", "cooldown_hours": 168},
]

TITLES = {
    RuleType.SAVINGS_REMINDER.value: "💰 Savings Reminder",
    RuleType.GOAL_PROGRESS.value: "🎯 Goal Progress Update",
    RuleType.LOW_ACTIVITY.value: "🌟 We Miss You!",
    RuleType.PAYMENT_SUCCESS.value: "✅ Payment Successful",
    RuleType.MILESTONE_REACHED.value: "🎉 Milestone Achieved!",
}
DEFAULT_TITLE = "📱 Ajopay Notification"


def title_for(notification_type: Union[str, RuleType]) -> str:
    key = notification_type.value if isinstance(notification_type, RuleType) else notification_type
    return TITLES.get(key, DEFAULT_TITLE)


# ── Helpers ────────────────────────────────────────────────

def find_insight(insights: Sequence[UserInsight], kind: InsightType) -> Optional[UserInsight]:
    return next((i for i in insights if i.insight_type == kind), None)


def latest_event(events: Sequence[UserEvent], kind: EventType) -> Optional[UserEvent]:
    matching = [e for e in events if e.event_type == kind]
    if not matching:
        return None
    return max(matching, key=lambda e: e.timestamp)


def days_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


def _number(value, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return f"{amount:,.0f}"
    return f"{amount:,.2f}"


def reached_milestone(total_savings: float) -> Optional[int]:
    """
    The milestone whose band contains total_savings, if any. The upper edge
    is inclusive: exactly 10% over a milestone still counts as reaching it.
    """
    return next(
        (m for m in MILESTONES if m <= total_savings <= m * MILESTONE_BAND),
        None,
    )


def _goal_days_remaining(events, now) -> Optional[float]:
    goal = latest_event(events, EventType.SAVINGS_GOAL_SET)
    if goal is None:
        return None
    target = parse_timestamp(goal.event_data.get("targetDate"))
    if target is None:
        return None
    return days_between(target, now)


# ── Conditions: (insights, events, now) -> bool ────────────

def savings_reminder_due(insights, events, now) -> bool:
    pattern = find_insight(insights, InsightType.SAVINGS_PATTERN)
    if pattern is None:
        return False
    last = latest_event(events, EventType.PAYMENT_COMPLETED)
    if last is None:
        return False
    expected_gap = 1 / (_number(pattern.insight_data.get("frequency")) or 1)
    return days_between(now, last.timestamp) > expected_gap * SAVINGS_OVERDUE_FACTOR


def goal_deadline_near(insights, events, now) -> bool:
    remaining = _goal_days_remaining(events, now)
    return remaining is not None and 0 < remaining <= GOAL_WINDOW_DAYS


def activity_dropped(insights, events, now) -> bool:
    usage = find_insight(insights, InsightType.USAGE_FREQUENCY)
    if usage is None:
        return False
    last = latest_event(events, EventType.APP_OPENED)
    if last is None:
        return False
    expected_gap = 1 / (_number(usage.insight_data.get("dailyUsage")) or 1)
    return days_between(now, last.timestamp) > expected_gap * INACTIVITY_FACTOR


def milestone_in_band(insights, events, now) -> bool:
    pattern = find_insight(insights, InsightType.SAVINGS_PATTERN)
    if pattern is None:
        return False
    return reached_milestone(_number(pattern.insight_data.get("totalSavings"))) is not None


# ── Messages: (insights, events, now, currency) -> str ─────

def savings_reminder_message(insights, events, now, currency) -> str:
    pattern = find_insight(insights, InsightType.SAVINGS_PATTERN)
    average = _number(pattern.insight_data.get("averageAmount")) if pattern else 0
    return (
        f"It's been a while since your last savings! Your average contribution is "
        f"{currency}{format_amount(average)}. Ready to save again? 💰"
    )


def goal_progress_message(insights, events, now, currency) -> str:
    goal = latest_event(events, EventType.SAVINGS_GOAL_SET)
    goal_amount = _number(goal.event_data.get("goalAmount")) if goal else 0
    remaining = _goal_days_remaining(events, now) or 0
    return (
        f"Your savings goal of {currency}{format_amount(goal_amount)} is due in "
        f"{math.ceil(remaining)} days! Keep up the great work! 🎯"
    )


def low_activity_message(insights, events, now, currency) -> str:
    return (
        "We miss you! Your savings journey is waiting. Check your progress "
        "and keep building your financial future! 🌟"
    )


def milestone_message(insights, events, now, currency) -> str:
    pattern = find_insight(insights, InsightType.SAVINGS_PATTERN)
    total = _number(pattern.insight_data.get("totalSavings")) if pattern else 0
    return (
        f"🎉 Congratulations! You've saved {currency}{format_amount(total)}! "
        f"You're building an amazing financial future!"
    )


Condition = Callable[[Sequence[UserInsight], Sequence[UserEvent], datetime], bool]
MessageBuilder = Callable[[Sequence[UserInsight], Sequence[UserEvent], datetime, str], str]

CONDITIONS: Dict[RuleType, Condition] = {
    RuleType.SAVINGS_REMINDER: savings_reminder_due,
    RuleType.GOAL_PROGRESS: goal_deadline_near,
    RuleType.LOW_ACTIVITY: activity_dropped,
    RuleType.MILESTONE_REACHED: milestone_in_band,
}

MESSAGES: Dict[RuleType, MessageBuilder] = {
    RuleType.SAVINGS_REMINDER: savings_reminder_message,
    RuleType.GOAL_PROGRESS: goal_progress_message,
    RuleType.LOW_ACTIVITY: low_activity_message,
    RuleType.MILESTONE_REACHED: milestone_message,
}


class RuleRegistry:
    def __init__(self, rules_file: Optional[str] = None, include_defaults: bool = True,
                 currency_symbol: str = "₦"):
        self.currency_symbol = currency_symbol
        self.rules: List[NotificationRule] = []
        if include_defaults:
            for rule in DEFAULT_RULES:
                self.add_rule(rule)
        if rules_file and os.path.exists(rules_file):
            with open(rules_file) as f:
                for rule in json.load(f):
                    self.add_rule(rule)

    def add_rule(self, rule: Union[NotificationRule, dict]) -> NotificationRule:
        if isinstance(rule, dict):
            rule = NotificationRule.from_dict(rule)
        if rule.type not in CONDITIONS:
            raise ValueError(f"No condition implemented for rule type '{rule.type.value}'")
        if self.get(rule.id) is not None:
            raise ValueError(f"Rule '{rule.id}' is already registered")
        self.rules.append(rule)
        # Stable sort: high priority first, registration order within a priority
        self.rules.sort(key=lambda r: PRIORITY_RANK[r.priority], reverse=True)
        logger.debug("Registered rule %s (%s, scope=%s)", rule.id, rule.type.value, rule.user_id)
        return rule

    def get(self, rule_id: str) -> Optional[NotificationRule]:
        return next((r for r in self.rules if r.id == rule_id), None)

    def rules_for(self, user_id: str) -> List[NotificationRule]:
        return [r for r in self.rules if r.applies_to(user_id)]

    def evaluate(self, rule: NotificationRule, insights, events, now) -> bool:
        return bool(CONDITIONS[rule.type](insights, events, now))

    def render(self, rule: NotificationRule, insights, events, now) -> str:
        return MESSAGES[rule.type](insights, events, now, self.currency_symbol)

    def __iter__(self) -> Iterator[NotificationRule]:
        return iter(list(self.rules))

    def __len__(self) -> int:
        return len(self.rules)

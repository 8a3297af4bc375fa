"""
Insight Engine — deterministic statistics over a user's recent events.

Each derivation has a minimum sample size and is simply left out below
it. Thresholds, weights and confidence caps are fixed algorithm constants.
"""

import logging
import statistics
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from smart_notifications.engine.models import EventType, InsightType, UserEvent, UserInsight, as_utc

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

SAVINGS_MIN_EVENTS = 3
SAVINGS_WINDOW_DAYS = 30
USAGE_MIN_EVENTS = 5
PAYMENT_MIN_EVENTS = 2
ENGAGEMENT_MIN_EVENTS = 10

HIGH_ENGAGEMENT = 0.7
MEDIUM_ENGAGEMENT = 0.3

ENGAGEMENT_WEIGHTS = {
    EventType.APP_OPENED: 1,
    EventType.PAYMENT_INITIATED: 3,
    EventType.PAYMENT_COMPLETED: 5,
    EventType.SAVINGS_GOAL_SET: 3,
    EventType.FEATURE_USED: 2,
    EventType.BUTTON_CLICK: 0.5,
    EventType.PAGE_VIEW: 0.3,
}
DEFAULT_WEIGHT = 1


def amount_of(event: UserEvent) -> float:
    """eventData.amount as a float; missing or non-numeric counts as 0."""
    value = event.event_data.get("amount", 0)
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def engagement_level(value: float) -> str:
    if value >= HIGH_ENGAGEMENT:
        return "high"
    if value >= MEDIUM_ENGAGEMENT:
        return "medium"
    return "low"


def consistency(events: Sequence[UserEvent]) -> float:
    """
    1 - stddev(intervals) / mean(intervals), clamped at 0 and rounded to 2dp.
    Evenly spaced events score 1.0; erratic gaps tend towards 0.
    """
    if len(events) < 2:
        return 0.0
    intervals = [
        (b.timestamp - a.timestamp).total_seconds()
        for a, b in zip(events, events[1:])
    ]
    mean = statistics.fmean(intervals)
    if mean <= 0:
        return 0.0
    spread = statistics.pstdev(intervals, mu=mean)
    return round(max(0.0, 1 - spread / mean), 2)


def engagement_score(events: Iterable[UserEvent]) -> float:
    total = sum(ENGAGEMENT_WEIGHTS.get(e.event_type, DEFAULT_WEIGHT) for e in events)
    return round(total, 1)


class InsightEngine:
    """
    Pure: derive() reads nothing but its arguments.

    `now` anchors "days since first open" and generated_at. When omitted,
    the latest event timestamp stands in for it so identical input always
    yields identical output.
    """

    def derive(self, events: Sequence[UserEvent], now: Optional[datetime] = None) -> List[UserInsight]:
        if not events:
            return []
        ordered = sorted(events, key=lambda e: e.timestamp)
        anchor = as_utc(now) if now is not None else ordered[-1].timestamp

        by_user: Dict[str, List[UserEvent]] = {}
        for event in ordered:
            by_user.setdefault(event.user_id, []).append(event)

        insights: List[UserInsight] = []
        for user_id, user_events in by_user.items():
            insights.extend(self.derive_user(user_id, user_events, anchor))
        return insights

    def derive_user(self, user_id: str, events: List[UserEvent], now: datetime) -> List[UserInsight]:
        results = []
        for kind, builder in (
            (InsightType.SAVINGS_PATTERN, self._savings_pattern),
            (InsightType.USAGE_FREQUENCY, self._usage_frequency),
            (InsightType.PAYMENT_BEHAVIOR, self._payment_behavior),
            (InsightType.ENGAGEMENT_SCORE, self._engagement_score),
        ):
            built = builder(events, now)
            if built is None:
                logger.debug("Not enough events for %s insight (user=%s)", kind.value, user_id)
                continue
            data, confidence = built
            results.append(UserInsight(
                user_id=user_id,
                insight_type=kind,
                insight_data=data,
                confidence=confidence,
                generated_at=now,
            ))
        return results

    # ── Derivations ────────────────────────────────────────
    # Each returns (insight_data, confidence) or None below its threshold.

    def _savings_pattern(self, events, now):
        savings = [e for e in events if e.event_type == EventType.PAYMENT_COMPLETED]
        count = len(savings)
        if count < SAVINGS_MIN_EVENTS:
            return None
        amounts = [amount_of(e) for e in savings]
        total = sum(amounts)
        data = {
            "averageAmount": total / count,
            "frequency": count / SAVINGS_WINDOW_DAYS,
            "totalSavings": total,
            "consistency": consistency(savings),
        }
        return data, min(0.9, count / 10)

    def _usage_frequency(self, events, now):
        opens = [e for e in events if e.event_type == EventType.APP_OPENED]
        count = len(opens)
        if count < USAGE_MIN_EVENTS:
            return None
        days_since_first = (now - opens[0].timestamp).total_seconds() / SECONDS_PER_DAY
        daily_usage = count / max(1, days_since_first)
        data = {
            "dailyUsage": daily_usage,
            "totalSessions": count,
            "lastActive": opens[-1].timestamp.isoformat(),
            "engagementLevel": engagement_level(daily_usage),
        }
        return data, min(0.8, count / 20)

    def _payment_behavior(self, events, now):
        attempts = [
            e for e in events
            if e.event_type in (EventType.PAYMENT_INITIATED, EventType.PAYMENT_COMPLETED)
        ]
        total = len(attempts)
        if total < PAYMENT_MIN_EVENTS:
            return None
        completed = [e for e in attempts if e.event_type == EventType.PAYMENT_COMPLETED]
        positive = [a for a in (amount_of(e) for e in completed) if a > 0]
        data: Dict[str, Any] = {
            "successRate": len(completed) / total,
            "totalAttempts": total,
            "completedPayments": len(completed),
            "averageAmount": sum(positive) / len(positive) if positive else 0,
        }
        return data, min(0.7, total / 5)

    def _engagement_score(self, events, now):
        total = len(events)
        if total < ENGAGEMENT_MIN_EVENTS:
            return None
        score = engagement_score(events)
        data = {
            "score": score,
            "totalEvents": total,
            "activeDays": len({e.timestamp.date() for e in events}),
            "level": engagement_level(score / 10),
        }
        return data, min(0.9, total / 50)

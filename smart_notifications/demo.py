#!/usr/bin/env python3
"""
╔══════════════════════════════════════════════════════════╗
║        Smart Notification Engine — Live Demo             ║
╚══════════════════════════════════════════════════════════╝

Run: python -m smart_notifications.demo
"""

import sys
from datetime import datetime, timedelta, timezone

from smart_notifications.engine.models import SmartNotification
from smart_notifications.engine.scheduler import NotificationScheduler
from smart_notifications.engine.tracking import EventTracker

CYAN  = "\033[96m"
GREEN = "\033[92m"
YELLOW= "\033[93m"
BOLD  = "\033[1m"
DIM   = "\033[2m"
RESET = "\033[0m"

START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class DemoClock:
    """Settable clock so the scenarios can travel through time."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def banner(text):
    print(f"\n{CYAN}{BOLD}{'─'*55}")
    print(f"  {text}")
    print(f"{'─'*55}{RESET}")


def show(notifications: list[SmartNotification]):
    if not notifications:
        print(f"  {DIM}(no notifications){RESET}")
    for n in notifications:
        print(f"  {GREEN}[{n.priority.value.upper()}]{RESET} {n.title}")
        print(f"     → {n.message}")


def main(interactive: bool = True):
    def pause(msg="Press ENTER to continue..."):
        if interactive:
            input(f"\n{DIM}{msg}{RESET}")

    clock = DemoClock(START)
    scheduler = NotificationScheduler(clock=clock)
    tracker = EventTracker(scheduler.events, clock=clock)
    user = "user_001"

    print(f"""
{CYAN}{BOLD}Smart Notification Engine — Live Demo{RESET}

Events → insights → rule-based, cooldown-gated notifications.
""")
    pause("Press ENTER to start the demo...")

    # ─────────────────────────────────────────────
    banner("SCENARIO 1 — Weekly saver builds a pattern")
    print("Three ₦5,000 contributions, one every 7 days.\n")
    for week in range(3):
        tracker.track_payment_completed(5000, f"ref_{week}", user_id=user)
        clock.advance(days=7)
    clock.advance(days=-7)
    for insight in scheduler.insights_for(user):
        print(f"  {insight.insight_type.value:<18} {insight.insight_data}  (confidence {insight.confidence})")
    pause()

    # ─────────────────────────────────────────────
    banner("SCENARIO 2 — Contribution overdue → savings reminder")
    print("Twenty days pass without a contribution (expected gap: 10 days).\n")
    clock.advance(days=20)
    show(scheduler.run(user))
    pause()

    # ─────────────────────────────────────────────
    banner("SCENARIO 3 — Cooldown")
    print("Run again one hour later: the reminder is still cooling down.\n")
    clock.advance(hours=1)
    show(scheduler.run(user))
    pause()

    # ─────────────────────────────────────────────
    banner("SCENARIO 4 — Goal deadline in 5 days")
    target = (clock() + timedelta(days=5)).isoformat()
    tracker.track_savings_goal_set(50000, target, user_id=user)
    show(scheduler.run(user))
    pause()

    # ─────────────────────────────────────────────
    banner("SCENARIO 5 — Milestone band")
    print("Another ₦5,000 pushes total savings to ₦20,000 — no band. Then ₦6,000 more.\n")
    tracker.track_payment_completed(5000, "ref_3", user_id=user)
    tracker.track_payment_completed(6000, "ref_4", user_id=user)
    show(scheduler.run(user))
    pause()

    # ─────────────────────────────────────────────
    banner("DEMO COMPLETE — Delivery queue")
    pending = scheduler.pending(user)
    for n in pending:
        scheduler.ack(n.id)
    stats = scheduler.notifications.stats()
    print(f"""
  Notifications emitted : {stats['total']}
  Acknowledged          : {stats['sent']}
  By type               : {stats['by_type']}
""")
    return stats


if __name__ == "__main__":
    main(interactive=sys.stdin.isatty())

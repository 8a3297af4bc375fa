"""
Event log and cooldown state.

The in-memory classes stand in for a relational store / Redis. Swap them
for real backends by implementing the same abstract interfaces.
"""

import bisect
import threading
import weakref
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import ContextManager, Dict, List, Optional, Tuple

from smart_notifications.engine.models import EventType, UserEvent


class EventStore(ABC):
    """Append-only log of behavioural events, per user."""

    @abstractmethod
    def append(self, event: UserEvent) -> str:
        """Persist an event and return its id. Raises StorageError on failure."""

    @abstractmethod
    def query(
        self,
        user_id: str,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
        event_type: Optional[EventType] = None,
    ) -> List[UserEvent]:
        """
        Events for a user, ascending by timestamp.
        With a limit, the most recent `limit` events are kept.
        Raises StorageError when the read path is unavailable.
        """


class InMemoryEventStore(EventStore):
    def __init__(self):
        self._events: Dict[str, List[UserEvent]] = defaultdict(list)
        self._lock = threading.Lock()

    def append(self, event: UserEvent) -> str:
        with self._lock:
            # insort_right keeps arrival order for equal timestamps
            bisect.insort(self._events[event.user_id], event, key=lambda e: e.timestamp)
        return event.id

    def query(self, user_id, since=None, limit=None, event_type=None) -> List[UserEvent]:
        with self._lock:
            events = list(self._events.get(user_id, ()))
        if since is not None:
            events = [e for e in events if e.timestamp >= since]
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def count(self, user_id: Optional[str] = None) -> int:
        with self._lock:
            if user_id is not None:
                return len(self._events.get(user_id, ()))
            return sum(len(v) for v in self._events.values())


class CooldownStore(ABC):
    """
    Last-fired timestamps keyed by (rule id, user id).

    Callers hold guard() across read -> decide -> mark so two concurrent
    runs for the same key cannot both fire.
    """

    @abstractmethod
    def guard(self, rule_id: str, user_id: str) -> ContextManager[None]:
        """Context manager serialising work on one (rule, user) key."""

    @abstractmethod
    def last_triggered(self, rule_id: str, user_id: str) -> Optional[datetime]:
        ...

    @abstractmethod
    def mark_triggered(self, rule_id: str, user_id: str, at: datetime) -> None:
        ...

    def in_cooldown(self, rule_id: str, user_id: str, now: datetime, cooldown: timedelta) -> bool:
        last = self.last_triggered(rule_id, user_id)
        return last is not None and now - last < cooldown


class InMemoryCooldownStore(CooldownStore):
    def __init__(self):
        self._last: Dict[Tuple[str, str], datetime] = {}
        # a key's lock lives only while some caller holds or waits on it
        self._locks = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, key: Tuple[str, str]) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def guard(self, rule_id, user_id):
        lock = self._lock_for((rule_id, user_id))
        with lock:
            yield

    def last_triggered(self, rule_id, user_id):
        return self._last.get((rule_id, user_id))

    def mark_triggered(self, rule_id, user_id, at):
        self._last[(rule_id, user_id)] = at


class RecentEventCache:
    """
    Bounded best-effort copy of the latest tracked events.
    Never the record of truth; derivation always reads the EventStore.
    """

    def __init__(self, max_size: int = 100):
        self._items: deque = deque(maxlen=max_size)
        self._lock = threading.Lock()

    @property
    def max_size(self) -> int:
        return self._items.maxlen

    def push(self, event: UserEvent) -> None:
        with self._lock:
            self._items.append(event)

    def items(self, user_id: Optional[str] = None) -> List[UserEvent]:
        with self._lock:
            items = list(self._items)
        if user_id is not None:
            items = [e for e in items if e.user_id == user_id]
        return items

    def __len__(self) -> int:
        return len(self._items)

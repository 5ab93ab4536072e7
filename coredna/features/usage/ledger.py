"""
coredna/features/usage/ledger.py

Usage ledger (append-only, per user).

Handles:
- Usage event emission (generations and extractions)
- Counting events since a window start
- Calendar-month reduction (UTC month boundaries)

Counts are always derived from the stored events; nothing is cached.
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from coredna.core.store import KeyValueStore, get_store
from coredna.features.providers.registry import user_namespace
from coredna.models.tier import Category
from coredna.models.usage_event import UsageEvent

logger = logging.getLogger(__name__)

USAGE_KEY = "usage"


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _kind(category: Union[Category, str]) -> str:
    return category.value if isinstance(category, Category) else str(category)


def month_start(now: Optional[datetime] = None) -> datetime:
    """First instant (UTC) of the calendar month containing now."""
    current = _normalize_now(now)
    return current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class UsageLedger:
    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store or get_store()

    def append(self, event: UsageEvent) -> UsageEvent:
        """Persist one event. Duplicates are kept and counted."""
        self.store.append(user_namespace(event.user_id), USAGE_KEY, event.to_record())
        logger.info(
            "[usage] event appended",
            extra={
                "user_id": event.user_id,
                "category": event.category,
                "engine": event.engine,
                "credits": event.credits,
            },
        )
        return event

    def record(
        self,
        user_id: str,
        category: Union[Category, str],
        engine: Optional[str] = None,
        credits: int = 0,
        *,
        occurred_at: Optional[datetime] = None,
        fallback: bool = False,
    ) -> UsageEvent:
        event = UsageEvent(
            user_id=user_id,
            category=_kind(category),
            engine=engine,
            credits=credits,
            occurred_at=_normalize_now(occurred_at),
            fallback=fallback,
        )
        return self.append(event)

    def events(
        self,
        user_id: str,
        category: Optional[Union[Category, str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[UsageEvent]:
        """
        Events for a user, oldest first.

        Args:
            category: Optional category / usage kind filter
            start: Optional window start (inclusive)
            end: Optional window end (inclusive)
        """
        raw = self.store.get(user_namespace(user_id), USAGE_KEY, []) or []
        kind = _kind(category) if category is not None else None
        start = _normalize_now(start) if start else None
        end = _normalize_now(end) if end else None

        result = []
        for record in raw:
            event = UsageEvent.from_record(record)
            if kind is not None and event.category != kind:
                continue
            if start is not None and event.occurred_at < start:
                continue
            if end is not None and event.occurred_at > end:
                continue
            result.append(event)
        result.sort(key=lambda e: e.occurred_at)
        return result

    def count_since(self, user_id: str, category: Union[Category, str], window_start: datetime) -> int:
        return len(self.events(user_id, category, start=window_start))

    def count_this_month(self, user_id: str, category: Union[Category, str], now: Optional[datetime] = None) -> int:
        return self.count_since(user_id, category, month_start(now))

    def reduce_usage(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, int]:
        """Counts per category / usage kind for the current month."""
        counts = Counter(event.category for event in self.events(user_id, start=month_start(now)))
        return dict(counts)

    def credits_spent(self, user_id: str, now: Optional[datetime] = None) -> int:
        return sum(event.credits for event in self.events(user_id, start=month_start(now)))

    def clear(self, user_id: str) -> None:
        self.store.delete(user_namespace(user_id), USAGE_KEY)

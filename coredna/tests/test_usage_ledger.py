"""
coredna/tests/test_usage_ledger.py

Usage ledger: append-only events, UTC month windows, reductions.
"""

from datetime import datetime, timedelta, timezone

from coredna.features.usage.ledger import UsageLedger, month_start
from coredna.models.tier import EXTRACTION, Category
from coredna.models.usage_event import UsageEvent


def test_month_start_is_first_instant_in_utc():
    now = datetime(2026, 3, 15, 12, 30, tzinfo=timezone.utc)
    assert month_start(now) == datetime(2026, 3, 1, tzinfo=timezone.utc)


def test_month_start_converts_offsets_to_utc():
    # 01:00 on April 1st at UTC+2 is still March in UTC
    local = datetime(2026, 4, 1, 1, 0, tzinfo=timezone(timedelta(hours=2)))
    assert month_start(local) == datetime(2026, 3, 1, tzinfo=timezone.utc)


def test_month_start_treats_naive_as_utc():
    assert month_start(datetime(2026, 7, 9, 8)) == datetime(2026, 7, 1, tzinfo=timezone.utc)


def test_duplicates_are_counted(store, fixed_now):
    ledger = UsageLedger(store)
    event = UsageEvent(user_id="u1", category="video", engine="ltx2", credits=0, occurred_at=fixed_now)
    ledger.append(event)
    ledger.append(event)
    assert ledger.count_since("u1", Category.VIDEO, month_start(fixed_now)) == 2


def test_count_since_excludes_previous_month(store, fixed_now):
    ledger = UsageLedger(store)
    ledger.record("u1", Category.VIDEO, "ltx2", occurred_at=datetime(2026, 2, 28, 23, 59, tzinfo=timezone.utc))
    ledger.record("u1", Category.VIDEO, "ltx2", occurred_at=datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc))
    ledger.record("u1", Category.VIDEO, "ltx2", occurred_at=fixed_now)

    assert ledger.count_this_month("u1", Category.VIDEO, now=fixed_now) == 2


def test_counts_are_per_category_and_user(store, fixed_now):
    ledger = UsageLedger(store)
    ledger.record("u1", Category.VIDEO, "ltx2", occurred_at=fixed_now)
    ledger.record("u1", Category.IMAGE, "openai", occurred_at=fixed_now)
    ledger.record("u2", Category.VIDEO, "ltx2", occurred_at=fixed_now)

    assert ledger.count_this_month("u1", "video", now=fixed_now) == 1
    assert ledger.count_this_month("u1", "image", now=fixed_now) == 1
    assert ledger.count_this_month("u2", "image", now=fixed_now) == 0


def test_events_filtered_and_ordered(store, fixed_now):
    ledger = UsageLedger(store)
    later = fixed_now + timedelta(hours=1)
    ledger.record("u1", Category.LLM, "groq", occurred_at=later)
    ledger.record("u1", Category.LLM, "openai", occurred_at=fixed_now)

    events = ledger.events("u1", Category.LLM)
    assert [e.engine for e in events] == ["openai", "groq"]

    windowed = ledger.events("u1", start=fixed_now + timedelta(minutes=1))
    assert [e.engine for e in windowed] == ["groq"]


def test_reduce_usage_counts_month_by_kind(store, fixed_now):
    ledger = UsageLedger(store)
    ledger.record("u1", Category.VIDEO, "ltx2", credits=1, occurred_at=fixed_now)
    ledger.record("u1", Category.VIDEO, "sora2", credits=5, occurred_at=fixed_now)
    ledger.record("u1", EXTRACTION, occurred_at=fixed_now)
    ledger.record("u1", Category.IMAGE, "openai", occurred_at=datetime(2026, 1, 5, tzinfo=timezone.utc))

    assert ledger.reduce_usage("u1", now=fixed_now) == {"video": 2, "extraction": 1}
    assert ledger.credits_spent("u1", now=fixed_now) == 6


def test_fallback_flag_round_trips(store, fixed_now):
    ledger = UsageLedger(store)
    ledger.record("u1", Category.IMAGE, "unsplash-free", occurred_at=fixed_now, fallback=True)
    (event,) = ledger.events("u1")
    assert event.fallback is True
    assert event.credits == 0
    assert event.occurred_at == fixed_now

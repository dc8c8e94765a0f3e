"""Tests for per-day counters."""

from datetime import date

import pytest

from feed_shield.adapters.storage import MemoryStore
from feed_shield.core import DailyStatsTracker, Verdict


@pytest.mark.asyncio
async def test_record_counts_each_verdict() -> None:
    tracker = DailyStatsTracker(MemoryStore(), today=lambda: date(2024, 5, 1))

    stats = await tracker.record(
        [Verdict.NOURISH, Verdict.SHOW, Verdict.DISTILL, Verdict.FILTER, Verdict.FILTER]
    )

    assert stats.analyzed == 5
    assert stats.shown == 3
    assert stats.nourished == 1
    assert stats.distilled == 1
    assert stats.filtered == 2


@pytest.mark.asyncio
async def test_counters_roll_over_on_new_day() -> None:
    store = MemoryStore()
    current = {"day": date(2024, 5, 1)}
    tracker = DailyStatsTracker(store, today=lambda: current["day"])
    await tracker.record([Verdict.SHOW])

    current["day"] = date(2024, 5, 2)
    stats = await tracker.get()

    assert stats.date == "2024-05-02"
    assert stats.analyzed == 0


@pytest.mark.asyncio
async def test_reset() -> None:
    tracker = DailyStatsTracker(MemoryStore())
    await tracker.record([Verdict.FILTER])
    await tracker.reset()
    assert (await tracker.get()).filtered == 0

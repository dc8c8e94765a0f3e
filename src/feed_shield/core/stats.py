"""Per-day classification counters."""

from datetime import date
from typing import Callable, Iterable

from feed_shield.core.entities import DailyStats, Verdict
from feed_shield.core.interfaces import KeyValueStore

STATS_KEY = "daily_stats"


class DailyStatsTracker:
    """Track how many items were filtered, shown, nourished and distilled today."""

    def __init__(self, store: KeyValueStore, today: Callable[[], date] = date.today) -> None:
        self.store = store
        self.today = today

    async def get(self) -> DailyStats:
        """Return today's counters, rolling over on a new day."""
        raw = await self.store.get(STATS_KEY)
        today = self.today().isoformat()

        if not isinstance(raw, dict) or raw.get("date") != today:
            return await self.reset()

        return DailyStats(
            date=today,
            filtered=int(raw.get("filtered", 0)),
            shown=int(raw.get("shown", 0)),
            analyzed=int(raw.get("analyzed", 0)),
            nourished=int(raw.get("nourished", 0)),
            distilled=int(raw.get("distilled", 0)),
        )

    async def record(self, verdicts: Iterable[Verdict]) -> DailyStats:
        """Add a batch of verdicts to today's counters."""
        stats = await self.get()
        for verdict in verdicts:
            stats.analyzed += 1
            if verdict is Verdict.NOURISH:
                stats.shown += 1
                stats.nourished += 1
            elif verdict is Verdict.SHOW:
                stats.shown += 1
            elif verdict is Verdict.DISTILL:
                stats.shown += 1
                stats.distilled += 1
            else:
                stats.filtered += 1
        await self.store.set(STATS_KEY, stats.to_dict())
        return stats

    async def reset(self) -> DailyStats:
        stats = DailyStats(date=self.today().isoformat())
        await self.store.set(STATS_KEY, stats.to_dict())
        return stats

"""Best-effort buffered history of classification events."""

import asyncio
import logging
from collections import Counter, deque
from typing import Optional

from feed_shield.core.entities import LogEntry, Verdict
from feed_shield.core.interfaces import KeyValueStore

logger = logging.getLogger(__name__)

LOG_KEY = "classification_log"


class ClassificationLog:
    """Ring buffer of recent classifications, persisted only when enabled.

    ``record`` never touches storage, so it can be called from the
    classify path without delaying it. Buffered entries are written by
    ``flush``; when logging is disabled the buffer is dropped instead.
    """

    def __init__(
        self,
        store: KeyValueStore,
        enabled: bool = False,
        max_entries: int = 500,
        max_persisted: int = 5000,
    ) -> None:
        self.store = store
        self.enabled = enabled
        self.max_persisted = max_persisted
        self._recent: deque[LogEntry] = deque(maxlen=max_entries)
        self._pending: list[LogEntry] = []
        self._counts: Counter = Counter()

    async def load(self) -> None:
        """Seed the ring buffer from persisted history."""
        raw = await self.store.get(LOG_KEY)
        if not isinstance(raw, list):
            if raw is not None:
                logger.warning("Ignoring malformed classification history of type %s", type(raw).__name__)
            return
        for data in raw[-self._recent.maxlen:]:
            if isinstance(data, dict):
                self._recent.append(LogEntry.from_dict(data))

    def record(self, entry: LogEntry) -> None:
        self._recent.append(entry)
        self._pending.append(entry)
        self._counts[entry.verdict] += 1

    def history(self, limit: int = 50, verdict: Optional[Verdict] = None) -> list[LogEntry]:
        """Return up to limit entries, newest first."""
        entries = [e for e in reversed(self._recent) if verdict is None or e.verdict is verdict]
        return entries[:limit]

    def stats(self) -> dict[str, int]:
        """Counts per verdict since the last reset."""
        result = {
            v.value: self._counts.get(v, 0)
            for v in (Verdict.NOURISH, Verdict.SHOW, Verdict.DISTILL, Verdict.FILTER)
        }
        result["total"] = sum(self._counts.values())
        return result

    def reset_stats(self) -> None:
        self._counts.clear()

    async def flush(self) -> int:
        """Persist buffered entries if logging is enabled.

        Returns:
            Number of entries written (0 when disabled or empty)
        """
        if not self._pending:
            return 0

        pending, self._pending = self._pending, []
        if not self.enabled:
            return 0

        stored = await self.store.get(LOG_KEY)
        if not isinstance(stored, list):
            stored = []
        stored.extend(entry.to_dict() for entry in pending)
        await self.store.set(LOG_KEY, stored[-self.max_persisted:])
        return len(pending)

    async def clear(self) -> None:
        self._recent.clear()
        self._pending.clear()
        self._counts.clear()
        await self.store.set(LOG_KEY, [])

    async def run_flush_loop(self, interval: float = 10.0) -> None:
        """Flush every interval seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.flush()
            except OSError as e:
                logger.warning("Log flush failed: %s", e)

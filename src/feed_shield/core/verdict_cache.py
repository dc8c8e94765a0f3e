"""TTL + LRU verdict cache with an in-memory mirror of durable storage."""

import asyncio
import logging
import time
from typing import Callable, Optional

from feed_shield.core.entities import VerdictRecord
from feed_shield.core.interfaces import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_KEY = "cache"


class VerdictCache:
    """Map fingerprint -> VerdictRecord.

    Reads and writes go through the in-memory mirror; the mirror is
    written back to the store by ``flush`` only when dirty, so a read right
    after a write is never stale.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_entries: int = 500,
        ttl_seconds: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, VerdictRecord] = {}
        self._loaded = False
        self._dirty = False

    @property
    def dirty(self) -> bool:
        return self._dirty

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self._entries

    async def load(self) -> None:
        """Load the mirror from storage once."""
        if self._loaded:
            return
        raw = await self.store.get(CACHE_KEY) or {}
        dropped = 0
        for fingerprint, data in raw.items():
            try:
                self._entries[str(fingerprint)] = VerdictRecord.from_dict(data)
            except (ValueError, AttributeError):
                dropped += 1
        if dropped:
            logger.warning("Dropped %d malformed cache records", dropped)
            self._dirty = True
        self._loaded = True
        logger.debug("Loaded %d cache entries", len(self._entries))

    def get(self, fingerprint: str) -> Optional[VerdictRecord]:
        """Return the cached record, or None on a miss or expiry."""
        record = self._entries.get(fingerprint)
        if record is None:
            return None

        if self._is_expired(record):
            del self._entries[fingerprint]
            self._dirty = True
            return None

        return record

    def put(self, fingerprint: str, record: VerdictRecord) -> None:
        """Insert a record, evicting the oldest entries when at capacity."""
        if fingerprint in self._entries:
            del self._entries[fingerprint]
        elif len(self._entries) >= self.max_entries:
            overflow = len(self._entries) - self.max_entries + 1
            oldest = sorted(self._entries, key=lambda key: self._entries[key].timestamp)
            for key in oldest[:overflow]:
                del self._entries[key]

        self._entries[fingerprint] = record
        self._dirty = True

    async def flush(self) -> bool:
        """Write the mirror to storage if dirty.

        Returns:
            True if a write happened
        """
        if not self._dirty:
            return False
        await self.store.set(CACHE_KEY, {key: rec.to_dict() for key, rec in self._entries.items()})
        self._dirty = False
        return True

    async def sweep_expired(self) -> int:
        """Remove every expired entry and force a flush.

        Returns:
            Number of entries removed
        """
        await self.load()
        expired = [key for key, rec in self._entries.items() if self._is_expired(rec)]
        for key in expired:
            del self._entries[key]
        if expired:
            self._dirty = True
            logger.info("Swept %d expired cache entries", len(expired))
        await self.flush()
        return len(expired)

    async def run_flush_loop(self, interval: float = 5.0) -> None:
        """Flush every interval seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.flush()
            except OSError as e:
                logger.warning("Cache flush failed: %s", e)

    def _is_expired(self, record: VerdictRecord) -> bool:
        return self.clock() - record.timestamp > self.ttl_seconds

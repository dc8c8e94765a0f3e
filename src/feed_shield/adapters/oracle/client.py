"""Batch classification client with retry and fail-closed fallback."""

import asyncio
import logging
from typing import Optional

from feed_shield.adapters.oracle.prompt import positional_id
from feed_shield.core.entities import Item, VerdictRecord
from feed_shield.core.errors import OracleError
from feed_shield.core.interfaces import OracleTransport
from feed_shield.core.normalization import fail_closed, normalize_verdict
from feed_shield.core.verdict_cache import VerdictCache
from feed_shield.utils import log_event

logger = logging.getLogger(__name__)


class OracleClient:
    """Classify batches of items through an oracle transport.

    ``classify`` never raises and never returns fewer records than items:
    any unrecoverable failure yields ``filter`` for the whole batch.
    """

    def __init__(
        self,
        transport: OracleTransport,
        cache: VerdictCache,
        max_attempts: int = 2,
        retry_delay: float = 1.0,
        timeout: float = 60.0,
    ) -> None:
        self.transport = transport
        self.cache = cache
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.timeout = timeout

    async def classify(self, items: list[Item]) -> list[VerdictRecord]:
        """Classify items, returning one record per item in input order."""
        if not items:
            return []

        log_event(logger, logging.INFO, "classify_batch", transport=self.transport.name, size=len(items))

        # Positional ids only; caller-visible ids never reach the oracle
        entries = [{"id": positional_id(i), "text": item.text} for i, item in enumerate(items)]

        try:
            raw_verdicts = await asyncio.wait_for(self._send_with_retry(entries), timeout=self.timeout)
        except OracleError as e:
            log_event(logger, logging.ERROR, "classify_failed", reason=str(e), size=len(items))
            return fail_closed(len(items), str(e))
        except asyncio.TimeoutError:
            log_event(logger, logging.ERROR, "classify_timeout", timeout=self.timeout, size=len(items))
            return fail_closed(len(items), "classification timed out")

        by_id: dict[str, dict] = {}
        for entry in raw_verdicts:
            if isinstance(entry, dict) and isinstance(entry.get("id"), str):
                # Duplicates: last one wins
                by_id[entry["id"]] = entry

        records = []
        for i, item in enumerate(items):
            record = normalize_verdict(by_id.get(positional_id(i)))
            self.cache.put(item.fingerprint, record)
            records.append(record)

        return records

    async def _send_with_retry(self, entries: list[dict[str, str]]) -> list:
        last_error: Optional[OracleError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self.transport.send(entries)
            except OracleError as e:
                last_error = e
                logger.warning(
                    "Oracle request failed (attempt %d/%d): %s", attempt, self.max_attempts, e
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)

        if last_error is None:
            raise OracleError("no classification attempts configured")
        raise last_error

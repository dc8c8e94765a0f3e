"""Accumulate pending items into bounded batches and resolve their verdicts."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from feed_shield.core.entities import Item, Verdict, VerdictRecord
from feed_shield.core.interfaces import MessageChannel, PresentationHost
from feed_shield.pipeline.extraction import fingerprint_of
from feed_shield.pipeline.state_machine import VerdictStateMachine

if TYPE_CHECKING:
    from feed_shield.pipeline.reorderer import Reorderer

logger = logging.getLogger(__name__)

CLASSIFY_BATCH = "CLASSIFY_BATCH"


@dataclass
class Placement:
    """A resolved batch entry: where it was, what it became."""

    position: int
    handle: Any
    verdict: Verdict


class BatchScheduler:
    """Single queue, single timer.

    The first enqueue arms a timer; reaching ``batch_size`` flushes at once
    and cancels it; the timer flushes whatever is queued. A flushed batch is
    immutable and keeps its insertion order.
    """

    def __init__(
        self,
        host: PresentationHost,
        channel: MessageChannel,
        state_machine: VerdictStateMachine,
        reorderer: Optional["Reorderer"] = None,
        batch_size: int = 5,
        batch_timeout: float = 3.0,
    ) -> None:
        self.host = host
        self.channel = channel
        self.state_machine = state_machine
        self.reorderer = reorderer
        self.batch_size = batch_size
        self.batch_timeout = batch_timeout
        self._queue: list[Item] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._in_flight: dict[str, Item] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    def enqueue(self, item: Item) -> None:
        """Queue an item. Must be called from the running event loop."""
        self._queue.append(item)

        if len(self._queue) == 1:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.batch_timeout, self._flush_in_background)

        if len(self._queue) >= self.batch_size:
            self._flush_in_background()

    async def flush(self) -> None:
        """Send whatever is queued now and wait for it to resolve."""
        batch = self._take_batch()
        if batch:
            await self._send(batch)

    async def drain(self) -> None:
        """Wait for every in-flight background flush."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def discard(self) -> int:
        """Drop the queue and timer (view navigated away).

        Returns:
            Number of items dropped without being sent
        """
        self._cancel_timer()
        dropped = len(self._queue)
        self._queue = []
        if dropped:
            logger.debug("Discarded %d queued items on navigation", dropped)
        return dropped

    def is_tracking(self, handle: Any) -> bool:
        """Whether handle belongs to a queued or in-flight item."""
        for item in [*self._queue, *self._in_flight.values()]:
            if item.resolve() is handle:
                return True
        return False

    def _flush_in_background(self) -> None:
        batch = self._take_batch()
        if not batch:
            return
        task = asyncio.ensure_future(self._send(batch))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Batch flush failed", exc_info=task.exception())

    def _take_batch(self) -> list[Item]:
        self._cancel_timer()
        batch, self._queue = self._queue, []
        return batch

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _send(self, batch: list[Item]) -> None:
        for item in batch:
            self._in_flight[item.tracking_id] = item

        try:
            response = await self.channel.send(
                CLASSIFY_BATCH,
                items=[{"id": item.tracking_id, "text": item.text, "url": item.url} for item in batch],
            )
            self._reconcile(batch, response)
        finally:
            for item in batch:
                self._in_flight.pop(item.tracking_id, None)

    def _reconcile(self, batch: list[Item], response: Optional[dict[str, Any]]) -> None:
        verdicts = response.get("verdicts") if isinstance(response, dict) else None

        if not isinstance(verdicts, list):
            # Channel broke: show a warning state rather than leaving items pending forever
            logger.warning("Classification channel failed for a batch of %d items", len(batch))
            for item in batch:
                handle = self._resolve(item)
                if handle is not None:
                    self.state_machine.mark_unclassified(handle)
            return

        positions = {item.tracking_id: (position, item) for position, item in enumerate(batch)}

        latest: dict[str, dict[str, Any]] = {}
        for entry in verdicts:
            if not isinstance(entry, dict) or entry.get("verdict") is None:
                continue
            if not isinstance(entry.get("id"), str):
                continue
            if entry["id"] in positions:
                latest[entry["id"]] = entry

        view = self.host.current_view()
        placements: list[Placement] = []

        for tracking_id, entry in latest.items():
            position, item = positions[tracking_id]
            handle = self._resolve(item)
            if handle is None:
                # Verdict is already cached; it applies when the content reappears
                continue

            record = VerdictRecord(
                verdict=Verdict.parse(entry["verdict"]),
                reason=str(entry.get("reason") or ""),
                timestamp=time.time(),
                rewritten_text=entry.get("distilled"),
            )
            verdict = self.state_machine.apply(handle, record, view)
            placements.append(Placement(position, handle, verdict))

        # Items without a matching entry stay pending (hidden)
        unmatched = len(batch) - len(latest)
        if unmatched:
            logger.info("%d items received no verdict and stay hidden", unmatched)

        if self.reorderer is not None:
            enabled = response.get("feed_reordering_enabled", True) is not False
            self.reorderer.reorder(placements, enabled=enabled, view=view)

    def _resolve(self, item: Item) -> Optional[Any]:
        """Find the live unit for an item, re-identifying by fingerprint if stale."""
        handle = item.resolve()
        if handle is not None and self.host.is_connected(handle):
            return handle

        for candidate in self.host.find_units():
            if self.host.get_state(candidate) is not Verdict.PENDING:
                continue
            if fingerprint_of(self.host, candidate) == item.fingerprint:
                return candidate
        return None

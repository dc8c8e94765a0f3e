"""Watch the host's item stream and route new units to classification."""

import logging
import random
import string
import time
from typing import Any, Optional

from feed_shield.core.entities import Item, Verdict
from feed_shield.core.hasher import content_hash
from feed_shield.core.interfaces import PresentationHost
from feed_shield.core.verdict_cache import VerdictCache
from feed_shield.pipeline.batch_scheduler import BatchScheduler
from feed_shield.pipeline.extraction import extract_content
from feed_shield.pipeline.gate import ObservationGate
from feed_shield.pipeline.state_machine import VerdictStateMachine

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def make_tracking_id(fingerprint: str) -> str:
    """Process-unique id for one observation of a unit.

    The same content observed twice (e.g. after a node is recycled) must
    not alias, hence timestamp plus random suffix.
    """
    suffix = "".join(random.choices(_ID_ALPHABET, k=6))
    return f"{fingerprint}_{int(time.time() * 1000)}_{suffix}"


class Detector:
    """Turn newly observed units into pending items."""

    def __init__(
        self,
        host: PresentationHost,
        cache: VerdictCache,
        scheduler: BatchScheduler,
        state_machine: VerdictStateMachine,
        gate: Optional[ObservationGate] = None,
    ) -> None:
        self.host = host
        self.cache = cache
        self.scheduler = scheduler
        self.state_machine = state_machine
        self.gate = gate or ObservationGate()
        # While holding, new units are only hidden; nothing is classified
        self.holding = False
        self._attached = False

    def attach(self) -> None:
        """Subscribe to the host's structural add events."""
        if self._attached:
            return
        self.host.subscribe(self.on_nodes_added)
        self._attached = True

    def detach(self) -> None:
        if self._attached:
            self.host.unsubscribe()
            self._attached = False

    def on_nodes_added(self, nodes: list[Any]) -> None:
        """Structural-change callback."""
        if self.gate.paused:
            return
        for node in nodes:
            self.scan(node)

    def scan(self, root: Any = None) -> int:
        """Process every unit under root; returns how many were new."""
        processed = 0
        for handle in self.host.find_units(root):
            if self.process(handle):
                processed += 1
        return processed

    def process(self, handle: Any) -> bool:
        """Handle one observed unit.

        Returns:
            False if the unit already carried a presentation state
        """
        # Duplicate observation events
        if self.host.get_state(handle) is not None:
            return False

        if self.holding:
            self.state_machine.mark_pending(handle)
            return True

        # Extract before hiding: some hide mechanisms empty the text
        text, url = extract_content(self.host, handle)

        self.state_machine.mark_pending(handle)

        fingerprint = content_hash(text)
        cached = self.cache.get(fingerprint)
        if cached is not None:
            self.state_machine.apply(handle, cached, self.host.current_view())
            return True

        self.scheduler.enqueue(
            Item(
                text=text,
                fingerprint=fingerprint,
                url=url,
                tracking_id=make_tracking_id(fingerprint),
                handle=handle,
            )
        )
        return True

    def hide_unmarked(self) -> int:
        """Mark every unmarked unit pending (classifier unavailable)."""
        hidden = 0
        for handle in self.host.find_units():
            if self.host.get_state(handle) is None:
                self.state_machine.mark_pending(handle)
                hidden += 1
        return hidden

    def strip_markers(self) -> int:
        """Remove presentation markers so recycled units get reprocessed."""
        stripped = 0
        for handle in self.host.find_units():
            if self.host.get_state(handle) is not None:
                self.host.clear_state(handle)
                stripped += 1
        return stripped

    def reprocess_hidden(self) -> int:
        """Re-run units that were hidden while no classifier was reachable.

        Marker removal and re-marking happen in one synchronous step, so the
        unit is never visible in between.
        """
        reprocessed = 0
        for handle in self.host.find_units():
            if self.host.get_state(handle) is Verdict.PENDING and not self.scheduler.is_tracking(handle):
                self.host.clear_state(handle)
                if self.process(handle):
                    reprocessed += 1
        return reprocessed

"""Reorder a resolved batch in place so higher-value items come first."""

import logging
from typing import TYPE_CHECKING, Any, Optional

from feed_shield.core.entities import View, ViewKind
from feed_shield.core.interfaces import PresentationHost
from feed_shield.pipeline.gate import ObservationGate

if TYPE_CHECKING:
    from feed_shield.pipeline.batch_scheduler import Placement

logger = logging.getLogger(__name__)

# Smaller drifts are sub-pixel rounding, not a visible jump
SCROLL_DRIFT_TOLERANCE = 1.0


class Reorderer:
    """Stable-sort one batch's containers by verdict priority."""

    def __init__(self, host: PresentationHost, gate: ObservationGate) -> None:
        self.host = host
        self.gate = gate

    def reorder(
        self,
        placements: list["Placement"],
        enabled: bool = True,
        view: Optional[View] = None,
    ) -> bool:
        """Move the batch's containers into priority order.

        Args:
            placements: Resolved units of one flushed batch
            enabled: Feature flag delivered with the batch response
            view: View the batch was resolved under (queried when None)

        Returns:
            True if any container was moved
        """
        if not enabled:
            return False

        view = view or self.host.current_view()
        if view.kind is not ViewKind.FEED:
            return False

        entries = []
        for placement in placements:
            container = self.host.container_of(placement.handle)
            if container is not None:
                entries.append((placement.verdict.priority, placement.position, container))

        if len(entries) < 2:
            return False

        parent = self.host.parent_of(entries[0][2])
        if parent is None or any(self.host.parent_of(c) is not parent for _, _, c in entries):
            logger.debug("Skipping reorder: containers do not share one parent")
            return False

        children = self.host.children_of(parent)
        index = {id(child): i for i, child in enumerate(children)}
        current = [index[id(c)] for _, _, c in entries]

        # Equal priorities keep batch insertion order
        ordered = sorted(entries, key=lambda entry: (entry[0], entry[1]))
        containers = [container for _, _, container in ordered]
        target = [index[id(c)] for c in containers]
        if target == sorted(target):
            return False

        anchor = self._first_in_viewport(containers)
        anchor_top = self.host.viewport_offset(anchor) if anchor is not None else None

        with self.gate.suspended():
            reference = children[min(current)]
            for container in containers:
                self.host.insert_before(parent, container, reference)
                reference = self.host.next_sibling(container)

            if anchor is not None and anchor_top is not None:
                new_top = self.host.viewport_offset(anchor)
                if new_top is not None:
                    drift = new_top - anchor_top
                    if abs(drift) > SCROLL_DRIFT_TOLERANCE:
                        self.host.scroll_by(drift)

        logger.debug("Reordered %d containers", len(containers))
        return True

    def _first_in_viewport(self, containers: list[Any]) -> Optional[Any]:
        for container in containers:
            if self.host.viewport_offset(container) is not None:
                return container
        return None

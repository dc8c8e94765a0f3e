"""Turn verdicts into presentation states on host units."""

import logging
from typing import Any, Optional

from feed_shield.core.entities import ORACLE_VERDICTS, Verdict, VerdictRecord, View, ViewKind
from feed_shield.core.interfaces import PresentationHost

logger = logging.getLogger(__name__)


class VerdictStateMachine:
    """Apply ``pending -> {nourish, show, distill, filter}`` transitions.

    ``unclassified`` is a separate terminal state for a broken channel to
    the oracle, so "we don't know" stays distinguishable from "we decided
    no". Transitions are idempotent per unit: out-of-order batch results
    may safely re-apply a verdict.
    """

    def __init__(self, host: PresentationHost, thread_override_enabled: bool = True) -> None:
        self.host = host
        self.thread_override_enabled = thread_override_enabled

    def mark_pending(self, handle: Any) -> None:
        self.host.set_state(handle, Verdict.PENDING)

    def mark_unclassified(self, handle: Any) -> None:
        self.host.set_state(handle, Verdict.UNCLASSIFIED)

    def effective_verdict(self, handle: Any, verdict: Verdict, view: Optional[View]) -> Verdict:
        """Apply the thread-context override.

        In a thread view, ``filter`` on a post by the thread's own author is
        shown so the narrative keeps no gaps. Other verdicts pass through.
        """
        if (
            self.thread_override_enabled
            and verdict is Verdict.FILTER
            and view is not None
            and view.kind is ViewKind.THREAD
            and view.anchor
        ):
            author = self.host.author_of(handle)
            if author and author.lower() == view.anchor.lower():
                return Verdict.SHOW
        return verdict

    def apply(self, handle: Any, record: VerdictRecord, view: Optional[View] = None) -> Verdict:
        """Move a unit to the state for record and return that state."""
        verdict = record.verdict
        if verdict not in ORACLE_VERDICTS:
            # Pending/unclassified are never oracle outcomes
            verdict = Verdict.FILTER

        verdict = self.effective_verdict(handle, verdict, view)
        self.host.set_state(handle, verdict)

        if verdict is Verdict.DISTILL and record.rewritten_text:
            self.host.replace_text(handle, record.rewritten_text)
            if not self.host.has_rewrite_label(handle):
                self.host.add_rewrite_label(handle)

        return verdict

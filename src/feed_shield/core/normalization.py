"""Map the oracle's free-form verdict labels onto the closed verdict set."""

import time
from typing import Any, Optional

from feed_shield.core.entities import Verdict, VerdictRecord

NOURISH_LABELS = frozenset({"nourish", "beneficial", "nurture", "promote"})
SHOW_LABELS = frozenset({"show", "allow", "approve", "keep", "display", "visible"})
DISTILL_LABELS = frozenset({"distill", "rewrite", "summarize"})

FAIL_CLOSED_REASON = "classification unavailable - fail closed"


def normalize_verdict(raw: Any, timestamp: Optional[float] = None) -> VerdictRecord:
    """Normalize one raw oracle entry.

    Anything that is not a recognised label, including a missing or
    malformed entry, becomes ``filter``.
    """
    now = time.time() if timestamp is None else timestamp

    if not isinstance(raw, dict) or not isinstance(raw.get("verdict"), str):
        return VerdictRecord(Verdict.FILTER, "no verdict returned - fail closed", now)

    label = raw["verdict"].strip().lower()
    reason = raw.get("reason") if isinstance(raw.get("reason"), str) else ""

    if label in NOURISH_LABELS:
        return VerdictRecord(Verdict.NOURISH, reason or "nourishing content", now)
    if label in DISTILL_LABELS:
        # Accept both wire names for the rewrite
        rewrite = raw.get("distilled") or raw.get("rewritten_text")
        return VerdictRecord(
            Verdict.DISTILL,
            reason or "distilled",
            now,
            rewritten_text=rewrite if isinstance(rewrite, str) and rewrite else None,
        )
    if label in SHOW_LABELS:
        return VerdictRecord(Verdict.SHOW, reason or "approved", now)
    return VerdictRecord(Verdict.FILTER, reason or "filtered", now)


def fail_closed(count: int, reason: Optional[str] = None) -> list[VerdictRecord]:
    """Build ``filter`` records for a whole failed batch."""
    now = time.time()
    return [VerdictRecord(Verdict.FILTER, reason or FAIL_CLOSED_REASON, now) for _ in range(count)]

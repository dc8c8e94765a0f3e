"""Core domain entities."""

import weakref
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional


class Verdict(str, Enum):
    """Presentation state of a content item."""

    NOURISH = "nourish"
    SHOW = "show"
    DISTILL = "distill"
    FILTER = "filter"
    # Transient states, never produced by the oracle
    PENDING = "pending"
    UNCLASSIFIED = "unclassified"

    @classmethod
    def parse(cls, value: Any) -> "Verdict":
        """Parse a verdict string, failing closed on anything unknown."""
        if isinstance(value, Verdict):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.FILTER

    @property
    def is_visible(self) -> bool:
        return self in (Verdict.NOURISH, Verdict.SHOW, Verdict.DISTILL)

    @property
    def priority(self) -> int:
        """Sort key for feed reordering (lower comes first)."""
        return VERDICT_PRIORITY.get(self, VERDICT_PRIORITY[Verdict.PENDING])


VERDICT_PRIORITY = {
    Verdict.NOURISH: 0,
    Verdict.SHOW: 1,
    Verdict.DISTILL: 2,
    Verdict.FILTER: 3,
    Verdict.PENDING: 4,
}

ORACLE_VERDICTS = frozenset({Verdict.NOURISH, Verdict.SHOW, Verdict.DISTILL, Verdict.FILTER})


class ClassificationMode(str, Enum):
    """Where classification requests are routed."""

    LOCAL = "local"
    API = "api"


class ViewKind(str, Enum):
    """Kind of page the host is currently showing."""

    FEED = "feed"
    THREAD = "thread"
    OTHER = "other"


@dataclass(frozen=True)
class View:
    """Current host view and, for threads, the anchor author."""

    kind: ViewKind
    anchor: Optional[str] = None


@dataclass
class ContentParts:
    """Raw content extracted from one observed unit."""

    text: str = ""
    author: str = ""
    quote_text: str = ""
    link_preview_text: str = ""
    url: str = ""


@dataclass
class VerdictRecord:
    """Outcome of classification for one fingerprint."""

    verdict: Verdict
    reason: str
    timestamp: float
    rewritten_text: Optional[str] = None

    def __post_init__(self) -> None:
        self.verdict = Verdict.parse(self.verdict)
        if self.verdict is not Verdict.DISTILL:
            self.rewritten_text = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "verdict": self.verdict.value,
            "reason": self.reason,
            "timestamp": self.timestamp,
        }
        if self.rewritten_text:
            data["rewritten_text"] = self.rewritten_text
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VerdictRecord":
        """Build a record from its persisted form.

        Raises:
            ValueError: If the data has no usable timestamp
        """
        try:
            timestamp = float(data["timestamp"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid cache record: {data!r}") from e
        return cls(
            verdict=Verdict.parse(data.get("verdict")),
            reason=str(data.get("reason") or ""),
            timestamp=timestamp,
            rewritten_text=data.get("rewritten_text"),
        )


class Item:
    """One observed content unit queued for classification.

    The host handle is borrowed: a weak reference is kept where the host
    object allows it, so a recycled node can disappear at any time.
    """

    def __init__(
        self,
        text: str,
        fingerprint: str,
        url: str = "",
        tracking_id: str = "",
        handle: Any = None,
    ) -> None:
        self.text = text
        self.fingerprint = fingerprint
        self.url = url
        self.tracking_id = tracking_id
        self._handle_ref = _make_ref(handle)

    def resolve(self) -> Any:
        """Return the host handle, or None if it has been collected."""
        return self._handle_ref()

    def __repr__(self) -> str:
        return f"Item(tracking_id={self.tracking_id!r}, fingerprint={self.fingerprint!r})"


def _make_ref(handle: Any):
    if handle is None:
        return lambda: None
    try:
        return weakref.ref(handle)
    except TypeError:
        # Hosts may hand out plain values (ids, strings) as handles
        return lambda: handle


@dataclass
class QuotaState:
    """Daily usage counter and lockout flag."""

    date: str
    used_seconds: int = 0
    limit_seconds: int = 900
    locked: bool = False


@dataclass(frozen=True)
class TickResult:
    """Reply to a liveness tick."""

    remaining: int
    locked: bool


@dataclass
class DailyStats:
    """Per-day classification counters."""

    date: str
    filtered: int = 0
    shown: int = 0
    analyzed: int = 0
    nourished: int = 0
    distilled: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class LogEntry:
    """One classification event for the audit history."""

    timestamp: float
    fingerprint: str
    text: str
    verdict: Verdict
    reason: str
    url: str = ""
    rewritten_text: Optional[str] = None
    from_cache: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["verdict"] = self.verdict.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEntry":
        return cls(
            timestamp=float(data.get("timestamp") or 0),
            fingerprint=str(data.get("fingerprint") or ""),
            text=str(data.get("text") or ""),
            verdict=Verdict.parse(data.get("verdict")),
            reason=str(data.get("reason") or ""),
            url=str(data.get("url") or ""),
            rewritten_text=data.get("rewritten_text"),
            from_cache=bool(data.get("from_cache", False)),
        )


@dataclass
class ClassifiedItem:
    """Verdict for one entry of a classification batch."""

    id: str
    fingerprint: str
    record: VerdictRecord
    from_cache: bool = False

    def to_message(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "verdict": self.record.verdict.value,
            "reason": self.record.reason,
            "hash": self.fingerprint,
        }
        if self.record.rewritten_text:
            data["distilled"] = self.record.rewritten_text
        return data

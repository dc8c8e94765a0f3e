"""Core domain layer."""

from feed_shield.core.classification_log import ClassificationLog
from feed_shield.core.entities import (
    ClassificationMode,
    ClassifiedItem,
    ContentParts,
    DailyStats,
    Item,
    LogEntry,
    QuotaState,
    TickResult,
    Verdict,
    VerdictRecord,
    View,
    ViewKind,
)
from feed_shield.core.hasher import content_hash
from feed_shield.core.interfaces import (
    KeyValueStore,
    MessageChannel,
    OracleTransport,
    PresentationHost,
    Surface,
)
from feed_shield.core.quota import QuotaTracker
from feed_shield.core.stats import DailyStatsTracker
from feed_shield.core.verdict_cache import VerdictCache

__all__ = [
    "ClassificationLog",
    "ClassificationMode",
    "ClassifiedItem",
    "ContentParts",
    "DailyStats",
    "DailyStatsTracker",
    "Item",
    "KeyValueStore",
    "LogEntry",
    "MessageChannel",
    "OracleTransport",
    "PresentationHost",
    "QuotaState",
    "QuotaTracker",
    "Surface",
    "TickResult",
    "Verdict",
    "VerdictCache",
    "VerdictRecord",
    "View",
    "ViewKind",
    "content_hash",
]

"""Tests for the classification history log."""

import pytest

from feed_shield.adapters.storage import MemoryStore
from feed_shield.config import Settings
from feed_shield.core import ClassificationLog, LogEntry, Verdict
from feed_shield.core.classification_log import LOG_KEY
from feed_shield.service import ShieldService
from fakes import FakeTransport


def entry(verdict: Verdict, text: str = "post") -> LogEntry:
    return LogEntry(timestamp=1.0, fingerprint="abc", text=text, verdict=verdict, reason="r")


@pytest.mark.asyncio
async def test_disabled_log_discards_buffer() -> None:
    store = MemoryStore()
    log = ClassificationLog(store, enabled=False)
    log.record(entry(Verdict.SHOW))

    written = await log.flush()

    assert written == 0
    assert store.writes == 0
    # Nothing left to write once enabled later
    log.enabled = True
    assert await log.flush() == 0


@pytest.mark.asyncio
async def test_enabled_log_persists_and_caps() -> None:
    store = MemoryStore()
    log = ClassificationLog(store, enabled=True, max_persisted=3)
    for i in range(5):
        log.record(entry(Verdict.FILTER, text=f"post {i}"))

    assert await log.flush() == 5

    persisted = store.snapshot()[LOG_KEY]
    assert [e["text"] for e in persisted] == ["post 2", "post 3", "post 4"]
    assert persisted[0]["verdict"] == "filter"


def test_history_newest_first_with_filter() -> None:
    log = ClassificationLog(MemoryStore(), max_entries=10)
    log.record(entry(Verdict.SHOW, "first"))
    log.record(entry(Verdict.FILTER, "second"))
    log.record(entry(Verdict.SHOW, "third"))

    assert [e.text for e in log.history()] == ["third", "second", "first"]
    assert [e.text for e in log.history(verdict=Verdict.SHOW)] == ["third", "first"]
    assert [e.text for e in log.history(limit=1)] == ["third"]


def test_ring_buffer_is_bounded() -> None:
    log = ClassificationLog(MemoryStore(), max_entries=2)
    for i in range(5):
        log.record(entry(Verdict.SHOW, str(i)))
    assert [e.text for e in log.history()] == ["4", "3"]


def test_stats_and_reset() -> None:
    log = ClassificationLog(MemoryStore())
    log.record(entry(Verdict.NOURISH))
    log.record(entry(Verdict.FILTER))
    log.record(entry(Verdict.FILTER))

    assert log.stats() == {"nourish": 1, "show": 0, "distill": 0, "filter": 2, "total": 3}
    log.reset_stats()
    assert log.stats()["total"] == 0


@pytest.mark.asyncio
async def test_load_and_clear() -> None:
    store = MemoryStore({LOG_KEY: [entry(Verdict.SHOW, "old").to_dict()]})
    log = ClassificationLog(store, enabled=True)
    await log.load()
    assert [e.text for e in log.history()] == ["old"]

    await log.clear()
    assert log.history() == []
    assert store.snapshot()[LOG_KEY] == []


@pytest.mark.asyncio
async def test_malformed_history_is_ignored() -> None:
    store = MemoryStore({LOG_KEY: {"not": "a list"}})
    log = ClassificationLog(store, enabled=True)

    await log.load()
    assert log.history() == []

    log.record(entry(Verdict.SHOW))
    assert await log.flush() == 1
    assert len(store.snapshot()[LOG_KEY]) == 1


@pytest.mark.asyncio
async def test_service_starts_with_malformed_history() -> None:
    store = MemoryStore({LOG_KEY: "garbage"})
    service = ShieldService(Settings(), store, relay=FakeTransport())

    await service.start()
    try:
        assert service.log.history() == []
    finally:
        await service.stop()

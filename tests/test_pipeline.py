"""Tests for detection and batching."""

import asyncio

import pytest

from feed_shield.adapters.storage import MemoryStore
from feed_shield.core import Verdict, VerdictCache, VerdictRecord, content_hash
from feed_shield.pipeline import BatchScheduler, Detector, ObservationGate, VerdictStateMachine
from feed_shield.pipeline.detector import make_tracking_id
from fakes import FakeChannel, FakeHost, verdicts_by_text


def build(host: FakeHost, channel: FakeChannel, batch_size: int = 5, batch_timeout: float = 3.0):
    cache = VerdictCache(MemoryStore())
    machine = VerdictStateMachine(host)
    scheduler = BatchScheduler(host, channel, machine, batch_size=batch_size, batch_timeout=batch_timeout)
    detector = Detector(host, cache, scheduler, machine, ObservationGate())
    detector.attach()
    return detector, scheduler, cache


def test_tracking_ids_do_not_alias() -> None:
    first = make_tracking_id("abc")
    second = make_tracking_id("abc")
    assert first.startswith("abc_")
    assert first != second


@pytest.mark.asyncio
async def test_new_units_start_pending() -> None:
    host = FakeHost()
    channel = FakeChannel()
    detector, scheduler, _ = build(host, channel)

    unit = host.add_post("hello")

    assert unit.state is Verdict.PENDING
    assert scheduler.queued == 1
    assert scheduler.timer_armed
    scheduler.discard()


@pytest.mark.asyncio
async def test_cache_hit_applies_without_enqueue() -> None:
    host = FakeHost()
    channel = FakeChannel()
    detector, scheduler, cache = build(host, channel)
    cache.put(content_hash("known"), VerdictRecord(Verdict.NOURISH, "seen", cache.clock()))

    unit = host.add_post("known")

    assert unit.state is Verdict.NOURISH
    assert scheduler.queued == 0


@pytest.mark.asyncio
async def test_duplicate_observation_ignored() -> None:
    host = FakeHost()
    detector, scheduler, _ = build(host, FakeChannel())
    unit = host.add_post("hello")

    assert detector.process(unit) is False
    assert scheduler.queued == 1
    scheduler.discard()


@pytest.mark.asyncio
async def test_paused_gate_ignores_events() -> None:
    host = FakeHost()
    detector, scheduler, _ = build(host, FakeChannel())

    with detector.gate.suspended():
        with detector.gate.suspended():
            unit = host.add_post("moved")
        assert detector.gate.paused

    assert not detector.gate.paused
    assert unit.state is None
    assert scheduler.queued == 0


@pytest.mark.asyncio
async def test_full_batch_flushes_immediately() -> None:
    host = FakeHost()
    channel = FakeChannel(verdicts_by_text({f"post {i}": "show" for i in range(5)}))
    detector, scheduler, _ = build(host, channel, batch_size=5, batch_timeout=60)

    units = [host.add_post(f"post {i}") for i in range(5)]
    assert scheduler.queued == 0
    assert not scheduler.timer_armed

    await scheduler.drain()

    assert channel.sent_types() == ["CLASSIFY_BATCH"]
    assert [item["text"] for item in channel.sent[0][1]["items"]] == [f"post {i}" for i in range(5)]
    assert all(u.state is Verdict.SHOW for u in units)


@pytest.mark.asyncio
async def test_timer_flushes_partial_batch() -> None:
    host = FakeHost()
    channel = FakeChannel(verdicts_by_text({"a": "nourish", "b": "filter"}))
    detector, scheduler, _ = build(host, channel, batch_timeout=0.01)

    a = host.add_post("a")
    b = host.add_post("b")
    await asyncio.sleep(0.05)
    await scheduler.drain()

    assert len(channel.sent) == 1
    assert a.state is Verdict.NOURISH
    assert b.state is Verdict.FILTER


@pytest.mark.asyncio
async def test_unmatched_items_stay_pending() -> None:
    """Five items, verdicts for three: the other two stay hidden."""
    host = FakeHost()
    answered = {"p0": "show", "p2": "nourish", "p4": "filter"}
    channel = FakeChannel(verdicts_by_text(answered))
    detector, scheduler, _ = build(host, channel)

    units = [host.add_post(f"p{i}") for i in range(5)]
    await scheduler.drain()

    assert [u.state for u in units] == [
        Verdict.SHOW, Verdict.PENDING, Verdict.NOURISH, Verdict.PENDING, Verdict.FILTER,
    ]


@pytest.mark.asyncio
async def test_channel_failure_marks_unclassified() -> None:
    host = FakeHost()
    channel = FakeChannel(lambda message_type, **payload: None)
    detector, scheduler, _ = build(host, channel, batch_size=2)

    units = [host.add_post("x"), host.add_post("y")]
    await scheduler.drain()

    assert all(u.state is Verdict.UNCLASSIFIED for u in units)
    assert not any(u.state.is_visible for u in units)


@pytest.mark.asyncio
async def test_entries_without_verdict_are_skipped() -> None:
    host = FakeHost()

    def handler(message_type, **payload):
        items = payload["items"]
        return {"verdicts": [{"id": items[0]["id"]}, {"verdict": "show"}, "junk"]}

    detector, scheduler, _ = build(host, FakeChannel(handler), batch_size=1)
    unit = host.add_post("x")
    await scheduler.drain()

    assert unit.state is Verdict.PENDING


@pytest.mark.asyncio
async def test_stale_handle_resolved_by_fingerprint() -> None:
    host = FakeHost()
    replacement = {}

    def handler(message_type, **payload):
        # Host recycles the node while the batch is in flight
        original = host.units()[0]
        host.remove(original)
        node = host.add_post("recycled", notify=False)
        node.state = Verdict.PENDING
        replacement["node"] = node
        return verdicts_by_text({"recycled": "nourish"})(message_type, **payload)

    detector, scheduler, _ = build(host, FakeChannel(handler), batch_size=1)
    original = host.add_post("recycled")
    await scheduler.drain()

    assert replacement["node"].state is Verdict.NOURISH
    assert original.state is Verdict.PENDING


@pytest.mark.asyncio
async def test_discard_drops_queue_and_timer() -> None:
    host = FakeHost()
    channel = FakeChannel()
    detector, scheduler, _ = build(host, channel, batch_timeout=0.01)

    host.add_post("a")
    host.add_post("b")
    assert scheduler.discard() == 2
    await asyncio.sleep(0.05)

    assert channel.sent == []
    assert not scheduler.timer_armed


@pytest.mark.asyncio
async def test_strip_markers_and_rescan() -> None:
    host = FakeHost()
    channel = FakeChannel(verdicts_by_text({"a": "show"}))
    detector, scheduler, _ = build(host, channel, batch_size=1)
    unit = host.add_post("a")
    await scheduler.drain()
    unit.rewrite_labels = 1

    assert detector.strip_markers() == 1
    assert unit.state is None
    assert unit.rewrite_labels == 0

    # Verdict is cached by the service, not here: rescan re-queues it
    assert detector.scan() == 1
    await scheduler.drain()
    assert unit.state is Verdict.SHOW


@pytest.mark.asyncio
async def test_hide_unmarked_and_reprocess_hidden() -> None:
    host = FakeHost()
    channel = FakeChannel(verdicts_by_text({"a": "show", "b": "filter"}))
    detector, scheduler, _ = build(host, channel, batch_size=2)
    detector.detach()

    a = host.add_post("a")
    b = host.add_post("b")
    assert detector.hide_unmarked() == 2
    assert a.state is Verdict.PENDING

    assert detector.reprocess_hidden() == 2
    await scheduler.drain()

    assert a.state is Verdict.SHOW
    assert b.state is Verdict.FILTER


@pytest.mark.asyncio
async def test_reprocess_skips_items_in_flight() -> None:
    host = FakeHost()
    detector, scheduler, _ = build(host, FakeChannel())

    host.add_post("queued")
    assert scheduler.queued == 1
    assert detector.reprocess_hidden() == 0
    assert scheduler.queued == 1
    scheduler.discard()


@pytest.mark.asyncio
async def test_holding_detector_only_hides() -> None:
    host = FakeHost()
    channel = FakeChannel()
    detector, scheduler, cache = build(host, channel)
    cache.put(content_hash("known"), VerdictRecord(Verdict.SHOW, "seen", cache.clock()))
    detector.holding = True

    known = host.add_post("known")
    fresh = host.add_post("fresh")

    assert known.state is Verdict.PENDING
    assert fresh.state is Verdict.PENDING
    assert scheduler.queued == 0

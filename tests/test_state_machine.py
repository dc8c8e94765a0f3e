"""Tests for verdict presentation transitions."""

from feed_shield.core import Verdict, VerdictRecord, View, ViewKind
from feed_shield.pipeline import VerdictStateMachine
from feed_shield.pipeline.extraction import format_for_classification
from feed_shield.core.entities import ContentParts
from fakes import FakeHost


def record(verdict: str, rewrite: str = None) -> VerdictRecord:
    return VerdictRecord(verdict, "test", 1.0, rewritten_text=rewrite)


def test_apply_sets_state() -> None:
    host = FakeHost()
    unit = host.add_post("hello")
    machine = VerdictStateMachine(host)

    assert machine.apply(unit, record("nourish")) is Verdict.NOURISH
    assert unit.state is Verdict.NOURISH


def test_distill_twice_adds_one_label() -> None:
    host = FakeHost()
    unit = host.add_post("angry facts")
    machine = VerdictStateMachine(host)

    machine.apply(unit, record("distill", "X"))
    machine.apply(unit, record("distill", "X"))

    assert unit.text == "X"
    assert unit.rewrite_labels == 1


def test_thread_override_only_for_anchor_author() -> None:
    host = FakeHost(view=View(ViewKind.THREAD, anchor="alice"))
    by_anchor = host.add_post("thread start", author="Alice")
    by_other = host.add_post("reply", author="bob")
    machine = VerdictStateMachine(host)
    view = host.current_view()

    assert machine.apply(by_anchor, record("filter"), view) is Verdict.SHOW
    assert machine.apply(by_other, record("filter"), view) is Verdict.FILTER


def test_thread_override_does_not_touch_other_verdicts() -> None:
    host = FakeHost(view=View(ViewKind.THREAD, anchor="alice"))
    unit = host.add_post("thread start", author="alice")
    machine = VerdictStateMachine(host)

    assert machine.apply(unit, record("distill", "calm"), host.current_view()) is Verdict.DISTILL


def test_thread_override_can_be_disabled() -> None:
    host = FakeHost(view=View(ViewKind.THREAD, anchor="alice"))
    unit = host.add_post("thread start", author="alice")
    machine = VerdictStateMachine(host, thread_override_enabled=False)

    assert machine.apply(unit, record("filter"), host.current_view()) is Verdict.FILTER


def test_non_oracle_verdict_is_filtered() -> None:
    host = FakeHost()
    unit = host.add_post("x")
    machine = VerdictStateMachine(host)

    assert machine.apply(unit, record("pending")) is Verdict.FILTER


def test_pending_and_unclassified_markers() -> None:
    host = FakeHost()
    unit = host.add_post("x")
    machine = VerdictStateMachine(host)

    machine.mark_pending(unit)
    assert unit.state is Verdict.PENDING
    machine.mark_unclassified(unit)
    assert unit.state is Verdict.UNCLASSIFIED


def test_format_for_classification_order() -> None:
    parts = ContentParts(text="body", author="ann", quote_text="quoted", link_preview_text="preview")
    assert format_for_classification(parts) == "body\nAuthor: ann\nQuote: quoted\nLink: preview"
    assert format_for_classification(ContentParts(text="only")) == "only"

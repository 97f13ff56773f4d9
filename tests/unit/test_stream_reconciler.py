"""Unit tests for incremental stream reconciliation."""

from __future__ import annotations

import subprocess
import sys

import pytest

from bilingua.models.datatypes import CommittedSentence, PartialPreview
from bilingua.streaming.reconciler import ReconcilerSettings, ReconcilerState, StreamReconciler

_STREAM = "1. Foo\n2. Bar\n3. Baz\n"
_EXPECTED = (
    CommittedSentence(1, "Foo"),
    CommittedSentence(2, "Bar"),
    CommittedSentence(3, "Baz"),
)


def _assert_prefix(committed: tuple[CommittedSentence, ...]) -> None:
    assert [sentence.ordinal for sentence in committed] == list(range(1, len(committed) + 1))


def test_scripted_chunks_commit_in_order() -> None:
    """Chunks split mid-sentence should commit each line once its line break arrives."""

    reconciler = StreamReconciler(total_units=3)

    first = reconciler.feed("1. Foo")
    assert first.committed == ()
    assert first.partial == PartialPreview(1, "Foo")

    second = reconciler.feed("\n2. Ba")
    assert second.committed == (CommittedSentence(1, "Foo"),)
    assert second.partial == PartialPreview(2, "Ba")

    third = reconciler.feed("r\n3. Baz\n")
    assert third.committed == _EXPECTED
    assert third.translating is True

    final = reconciler.finish()
    assert final.committed == _EXPECTED
    assert final.partial.text == ""
    assert final.complete is True
    assert final.translating is False
    assert reconciler.state is ReconcilerState.DRAINED


@pytest.mark.parametrize("split_at", range(1, len(_STREAM)))
def test_prefix_invariant_for_every_two_way_split(split_at: int) -> None:
    """Splitting the stream anywhere, including inside a number, keeps a gapless prefix."""

    reconciler = StreamReconciler(total_units=3)

    for chunk in (_STREAM[:split_at], _STREAM[split_at:]):
        event = reconciler.feed(chunk)
        _assert_prefix(event.committed)

    assert reconciler.finish().committed == _EXPECTED


def test_prefix_invariant_for_character_by_character_stream() -> None:
    """Single-character deltas never produce gaps or reordering and never shrink."""

    reconciler = StreamReconciler(total_units=3)
    previous: tuple[CommittedSentence, ...] = ()

    for character in "Sure, here it is:\n" + _STREAM:
        committed = reconciler.feed(character).committed
        _assert_prefix(committed)
        assert committed[: len(previous)] == previous
        previous = committed

    assert reconciler.finish().committed == _EXPECTED


def test_extraction_is_idempotent_without_new_input() -> None:
    """Re-running extraction on an unchanged buffer yields identical state."""

    reconciler = StreamReconciler(total_units=3)
    reconciler.feed("1. Foo\n2. Ba")

    reconciler.extract()
    first = (reconciler.committed, reconciler.partial)
    reconciler.extract()
    second = (reconciler.committed, reconciler.partial)

    assert first == second
    assert first[0] == (CommittedSentence(1, "Foo"),)


def test_forced_final_scan_commits_trailing_line_without_trigger() -> None:
    """A last line whose final delta carries no trigger character is still committed."""

    reconciler = StreamReconciler(total_units=3)
    reconciler.feed("1. Foo\n2. Bar\n3. Ba")
    scans_before = reconciler.scan_count
    reconciler.feed("z")

    assert reconciler.scan_count == scans_before
    assert len(reconciler.committed) == 2

    final = reconciler.finish()

    assert final.committed == _EXPECTED


def test_single_character_line_waits_until_extended() -> None:
    """A one-character translation is not committed while it may still grow."""

    reconciler = StreamReconciler(total_units=2)

    assert reconciler.feed("1. A").committed == ()
    assert reconciler.feed("\n").committed == ()

    extended = StreamReconciler(total_units=2)
    extended.feed("1. A")
    assert extended.feed("B\n").committed == (CommittedSentence(1, "AB"),)


def test_single_character_line_commits_at_end_of_stream() -> None:
    """The forced final scan accepts one-character translations."""

    reconciler = StreamReconciler(total_units=2)
    reconciler.feed("1. A\n2. Bcd\n")

    assert reconciler.committed == ()

    assert reconciler.finish().committed == (
        CommittedSentence(1, "A"),
        CommittedSentence(2, "Bcd"),
    )


@pytest.mark.parametrize("cancel_after", range(0, 4))
def test_cancellation_preserves_committed_prefix(cancel_after: int) -> None:
    """Cancelling after delta N leaves exactly the state observed after delta N."""

    deltas = ["1. Foo", "\n2. Ba", "r\n3. Baz\n", "4. extra\n"]
    observed = StreamReconciler(total_units=3)
    for delta in deltas[:cancel_after]:
        observed.feed(delta)

    cancelled = StreamReconciler(total_units=3)
    for delta in deltas[:cancel_after]:
        cancelled.feed(delta)
    event = cancelled.cancel()

    assert event.committed == observed.committed
    assert event.partial == observed.partial
    assert event.cancelled is True
    assert event.complete is False
    assert event.translating is False


def test_failure_reports_reason_and_keeps_committed() -> None:
    """A transport failure drains the reconciler without losing commits."""

    reconciler = StreamReconciler(total_units=3)
    reconciler.feed("1. Foo\n2. Ba")

    event = reconciler.fail("connection reset")

    assert event.error == "connection reset"
    assert event.committed == (CommittedSentence(1, "Foo"),)
    assert event.translating is False


def test_input_after_drain_is_rejected() -> None:
    """Feeding a drained reconciler is a programming error."""

    reconciler = StreamReconciler(total_units=1)
    reconciler.feed("1. Foo\n")
    reconciler.finish()

    with pytest.raises(RuntimeError, match="drained"):
        reconciler.feed("more")


def test_out_of_order_and_noise_lines_are_skipped() -> None:
    """Only the next expected ordinal can commit; everything else is ignored."""

    reconciler = StreamReconciler(total_units=3)
    reconciler.feed("Here you go:\n2. Second\n1. First\n3. Third\n")

    assert reconciler.committed == (CommittedSentence(1, "First"),)
    assert reconciler.finish().committed == (CommittedSentence(1, "First"),)


def test_ordinals_beyond_document_length_are_never_committed() -> None:
    """Extra numbered lines past the unit count are ignored."""

    reconciler = StreamReconciler(total_units=2)
    reconciler.feed("1. One\n2. Two\n3. Three\n")

    assert [sentence.text for sentence in reconciler.finish().committed] == ["One", "Two"]


def test_gate_skips_plain_deltas_and_forces_periodic_scans() -> None:
    """Plain deltas skip scanning until the delta-count interval forces one."""

    reconciler = StreamReconciler(total_units=1)
    reconciler.feed("a")
    assert reconciler.scan_count == 1
    assert reconciler.should_extract("bc") is False
    assert reconciler.should_extract("x.") is True
    assert reconciler.should_extract("line\n") is True
    assert reconciler.should_extract("「") is True
    assert reconciler.should_extract("12") is False
    assert reconciler.should_extract("12.") is True

    for _ in range(19):
        reconciler.feed("a")
    assert reconciler.scan_count == 1

    reconciler.feed("a")
    assert reconciler.scan_count == 2
    assert reconciler.extraction_attempts == 21


def test_gate_scans_after_character_threshold() -> None:
    """Growing past the character threshold forces a scan."""

    reconciler = StreamReconciler(
        total_units=1,
        settings=ReconcilerSettings(scan_char_threshold=10, scan_every_deltas=50),
    )
    reconciler.feed("a")
    reconciler.feed("b" * 5)
    assert reconciler.scan_count == 1

    reconciler.feed("c" * 6)
    assert reconciler.scan_count == 2


def test_invalid_settings_are_rejected() -> None:
    """Non-positive thresholds should fail validation."""

    with pytest.raises(ValueError, match="min_commit_chars"):
        StreamReconciler(settings=ReconcilerSettings(min_commit_chars=0))


def test_library_debug_records_stay_silent_without_run_logger() -> None:
    """Importing and driving the reconciler writes nothing to stderr by default."""

    script = (
        "from bilingua.streaming.reconciler import StreamReconciler\n"
        "reconciler = StreamReconciler(total_units=2)\n"
        "reconciler.feed('1. Foo\\n2. Bar\\n')\n"
        "reconciler.finish()\n"
    )

    completed = subprocess.run(
        [sys.executable, "-c", script],
        capture_output=True,
        text=True,
        check=True,
    )

    assert completed.stderr == ""
    assert completed.stdout == ""

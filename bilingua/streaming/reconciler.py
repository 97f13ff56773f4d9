"""Incremental extraction of committed sentences from a numbered-line stream.

Responsibilities:
- Accumulate streamed text deltas into an append-only buffer.
- Decide cheaply when a re-scan is worth running (gating heuristic).
- Commit numbered lines strictly in order, exactly once, never retracting them.
- Maintain a best-effort preview of the sentence currently being generated.

Commit rule: while the stream is open, a numbered line is committed only once
its line break has arrived and its text reaches `min_commit_chars`; the
trailing unterminated line is always treated as in flight. The forced final
scan treats the trailing line as terminated and accepts single characters.

Scans resume from the offset just past the last committed line, so committed
lines are never re-examined and a scan only walks the uncommitted tail.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re

from loguru import logger

from ..llm.numbering import NumberingCodec
from ..models.datatypes import CommittedSentence, PartialPreview, ReconciliationEvent
from ..text.segmenter import Segmenter


@dataclass(frozen=True, slots=True)
class ReconcilerSettings:
    """Gating and commit thresholds.

    Attributes:
        scan_char_threshold: Force a scan once the buffer grew by more than this
            many characters since the last scan.
        scan_every_deltas: Force a scan on every N-th delta.
        min_commit_chars: Minimum decoded text length for committing while the
            stream is open.
    """

    scan_char_threshold: int = 100
    scan_every_deltas: int = 20
    min_commit_chars: int = 2

    def validate(self) -> None:
        """Validate threshold values."""

        if self.scan_char_threshold <= 0:
            raise ValueError("`scan_char_threshold` must be a positive integer.")
        if self.scan_every_deltas <= 0:
            raise ValueError("`scan_every_deltas` must be a positive integer.")
        if self.min_commit_chars <= 0:
            raise ValueError("`min_commit_chars` must be a positive integer.")


class ReconcilerState(str, Enum):
    """Processing state of a stream reconciler."""

    ACCUMULATING = "accumulating"
    EXTRACTING = "extracting"
    DRAINED = "drained"


class StreamReconciler:
    """Turn streamed text deltas into a growing committed-sentence prefix."""

    QUOTE_MARKS = frozenset("\"“”「」『』")
    TRIGGER_MARKS = Segmenter.TERMINAL_MARKS | QUOTE_MARKS | frozenset("\n")

    _DIGIT_DOT_RE = re.compile(r"\d+\.")

    def __init__(
        self,
        total_units: int | None = None,
        codec: NumberingCodec | None = None,
        settings: ReconcilerSettings | None = None,
    ) -> None:
        """Initialize an empty reconciler.

        Args:
            total_units: Number of source units; ordinals above it are never committed.
            codec: Numbered-line codec used to decode buffer lines.
            settings: Gating/commit thresholds.
        """

        self.total_units = total_units
        self.codec = codec if codec is not None else NumberingCodec()
        self.settings = settings if settings is not None else ReconcilerSettings()
        self.settings.validate()

        self._state = ReconcilerState.ACCUMULATING
        self._parts: list[str] = []
        self._buffer_length = 0
        self._committed: list[CommittedSentence] = []
        self._partial = PartialPreview.empty(1)
        self._scan_offset = 0
        self._extraction_attempts = 0
        self._chars_since_last_scan = 0
        self._scan_count = 0

    @property
    def state(self) -> ReconcilerState:
        return self._state

    @property
    def buffer(self) -> str:
        """Return the full accumulated stream text."""

        if len(self._parts) > 1:
            self._parts = ["".join(self._parts)]
        return self._parts[0] if self._parts else ""

    @property
    def committed(self) -> tuple[CommittedSentence, ...]:
        return tuple(self._committed)

    @property
    def partial(self) -> PartialPreview:
        return self._partial

    @property
    def extraction_attempts(self) -> int:
        """Return how many deltas went through the gating decision."""

        return self._extraction_attempts

    @property
    def scan_count(self) -> int:
        """Return how many extraction passes actually ran."""

        return self._scan_count

    @property
    def next_ordinal(self) -> int:
        return len(self._committed) + 1

    def feed(self, delta: str) -> ReconciliationEvent:
        """Append one delta, extract when the gate allows, and return a snapshot."""

        self._require_open()
        if delta:
            self._parts.append(delta)
            self._buffer_length += len(delta)
            self._chars_since_last_scan += len(delta)
            if self.should_extract(delta):
                self.extract()
            self._extraction_attempts += 1
        return self._snapshot()

    def should_extract(self, delta: str) -> bool:
        """Return whether a scan should run after appending `delta`.

        The gate only trades latency for cost; skipping or repeating a scan
        never changes which sentences end up committed.
        """

        if self._extraction_attempts == 0:
            return True
        if self._extraction_attempts % self.settings.scan_every_deltas == 0:
            return True
        if self._chars_since_last_scan > self.settings.scan_char_threshold:
            return True
        if any(character in self.TRIGGER_MARKS for character in delta):
            return True
        return self._DIGIT_DOT_RE.search(delta) is not None

    def extract(self, *, final: bool = False) -> tuple[CommittedSentence, ...]:
        """Run one extraction pass over the uncommitted tail of the buffer.

        Args:
            final: Treat the trailing line as complete and accept one-character texts.

        Returns:
            Sentences newly committed by this pass.
        """

        self._require_open()
        self._state = ReconcilerState.EXTRACTING
        buffer = self.buffer
        min_chars = 1 if final else self.settings.min_commit_chars
        newly_committed: list[CommittedSentence] = []

        position = self._scan_offset
        buffer_length = len(buffer)
        while position < buffer_length and not self._all_committed():
            line_end = buffer.find("\n", position)
            if line_end == -1:
                if not final:
                    break
                line_end = buffer_length
            line = buffer[position:line_end]
            next_position = line_end + 1

            decoded = self.codec.decode_line(line)
            if decoded is not None:
                ordinal, text = decoded
                if ordinal == self.next_ordinal and len(text) >= min_chars:
                    sentence = CommittedSentence(ordinal=ordinal, text=text)
                    self._committed.append(sentence)
                    newly_committed.append(sentence)
                    self._scan_offset = min(next_position, buffer_length)
            position = next_position

        self._scan_count += 1
        self._chars_since_last_scan = 0
        self._partial = self._find_partial(buffer)
        self._state = ReconcilerState.ACCUMULATING

        if newly_committed:
            logger.debug(
                "reconciler committed ordinals {}..{} (total={})",
                newly_committed[0].ordinal,
                newly_committed[-1].ordinal,
                len(self._committed),
            )
        return tuple(newly_committed)

    def finish(self) -> ReconciliationEvent:
        """Handle end-of-stream: force a final scan and drain."""

        self.extract(final=True)
        self._state = ReconcilerState.DRAINED
        self._partial = PartialPreview.empty(self.next_ordinal)
        return self._snapshot(translating=False, complete=True)

    def cancel(self) -> ReconciliationEvent:
        """Handle cancellation: drain without a final scan, keeping the committed prefix."""

        self._require_open()
        self._state = ReconcilerState.DRAINED
        return self._snapshot(translating=False, cancelled=True)

    def fail(self, reason: str) -> ReconciliationEvent:
        """Handle a transport failure: drain and report the committed prefix with the reason."""

        self._require_open()
        self._state = ReconcilerState.DRAINED
        return self._snapshot(translating=False, error=reason)

    def _find_partial(self, buffer: str) -> PartialPreview:
        """Return the preview for the next ordinal from lines after the committed prefix."""

        ordinal = self.next_ordinal
        if self._all_committed():
            return PartialPreview.empty(ordinal)
        for line in buffer[self._scan_offset:].split("\n"):
            text = self.codec.partial_text(line, ordinal)
            if text is not None:
                return PartialPreview(ordinal=ordinal, text=text)
        return PartialPreview.empty(ordinal)

    def _all_committed(self) -> bool:
        return self.total_units is not None and len(self._committed) >= self.total_units

    def _require_open(self) -> None:
        if self._state is ReconcilerState.DRAINED:
            raise RuntimeError("Stream reconciler is drained; no further input is accepted.")

    def _snapshot(
        self,
        *,
        translating: bool = True,
        complete: bool = False,
        cancelled: bool = False,
        error: str | None = None,
    ) -> ReconciliationEvent:
        return ReconciliationEvent(
            committed=tuple(self._committed),
            partial=self._partial,
            translating=translating,
            complete=complete,
            cancelled=cancelled,
            error=error,
        )

"""Translation session orchestration for one chapter.

Responsibilities:
- Segment the chapter once and encode the numbered prompt.
- Drive the stream reconciler against a transport, checking cancellation
  before every delta is consumed.
- Translate reconciliation events into session state transitions and progress
  notifications.
- Persist the start marker, optional checkpoints, and the final outcome.

Key types:
- `TranslationSession`: single-use orchestrator exposing `iter_events()` and `run()`.
- `CancellationToken`: cooperative cancellation flag safe to set from any thread.
- `ProgressSink`: callback protocol receiving one notification per event, in order.
- `SessionSettings`: translation and persistence options.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from typing import Iterator, Protocol

from loguru import logger

from ..errors import PersistenceError, StoreError, TransportError
from ..io.store import TranslationStore
from ..llm.numbering import NumberingCodec
from ..llm.translator import StreamTransport
from ..models.datatypes import (
    CommittedSentence,
    Document,
    PartialPreview,
    ReconciliationEvent,
    SessionOutcome,
    SessionState,
    TranslationRecord,
    TranslationStatus,
)
from ..streaming.reconciler import ReconcilerSettings, StreamReconciler
from ..telemetry.logger import RunLogger
from ..text.language import detect_language
from ..text.segmenter import Segmenter


class CancellationToken:
    """Cooperative cancellation flag backed by a `threading.Event`."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation; the session stops before consuming its next delta."""

        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


class ProgressSink(Protocol):
    """Receiver of session progress, invoked at most once at a time in delta order."""

    def on_event(
        self,
        committed_count: int,
        total: int,
        partial_preview: str,
        is_complete: bool,
    ) -> None:
        """Handle one reconciliation snapshot."""

    def on_error(self, message: str) -> None:
        """Handle a transport or persistence failure message."""


@dataclass(frozen=True, slots=True)
class SessionSettings:
    """Translation and persistence options for a session.

    Attributes:
        target_language: Language the model is asked to translate into.
        reuse_cached: Serve a stored completed translation of identical text
            instead of calling the transport; when off, the stored record is
            cleared before translating.
        persist_progress: Checkpoint the committed prefix each time it grows.
        max_tokens_factor: Generation budget as a multiple of the source length.
        reconciler: Gating and commit thresholds for the stream reconciler.
    """

    target_language: str = "中文"
    reuse_cached: bool = True
    persist_progress: bool = False
    max_tokens_factor: int = 3
    reconciler: ReconcilerSettings = field(default_factory=ReconcilerSettings)

    def validate(self) -> None:
        """Validate settings values."""

        if not self.target_language.strip():
            raise ValueError("`target_language` must be a non-empty string.")
        if self.max_tokens_factor <= 0:
            raise ValueError("`max_tokens_factor` must be a positive integer.")
        self.reconciler.validate()


class TranslationSession:
    """Translate one chapter through a streamed, numbered-line exchange.

    A session is single-use: `iter_events()` (or `run()`) may be called once.
    """

    def __init__(
        self,
        chapter_id: str,
        text: str,
        transport: StreamTransport,
        settings: SessionSettings | None = None,
        store: TranslationStore | None = None,
        progress: ProgressSink | None = None,
        cancellation: CancellationToken | None = None,
        run_logger: RunLogger | None = None,
        segmenter: Segmenter | None = None,
        codec: NumberingCodec | None = None,
    ) -> None:
        """Initialize collaborators; nothing is segmented or sent until iteration starts."""

        if not chapter_id.strip():
            raise ValueError("`chapter_id` must be a non-empty string.")
        self.chapter_id = chapter_id
        self.text = text
        self.transport = transport
        self.settings = settings if settings is not None else SessionSettings()
        self.settings.validate()
        self.store = store
        self.progress = progress
        self.cancellation = cancellation if cancellation is not None else CancellationToken()
        self.segmenter = segmenter if segmenter is not None else Segmenter()
        self.codec = codec if codec is not None else NumberingCodec()
        self._run_logger = run_logger

        self._state = SessionState.IDLE
        self._failure_reason: str | None = None
        self._document: Document | None = None
        self._outcome: SessionOutcome | None = None
        self._started = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def failure_reason(self) -> str | None:
        """Return the transport failure reason once the session has failed."""

        return self._failure_reason

    @property
    def document(self) -> Document | None:
        return self._document

    @property
    def outcome(self) -> SessionOutcome | None:
        """Return the final outcome once the terminal event has been produced."""

        return self._outcome

    def run(self) -> SessionOutcome:
        """Run the session to its end, forwarding every event to the progress sink.

        Raises:
            PersistenceError: The final outcome could not be stored; the outcome
                is attached to the exception and `persist()` may be retried.
            StoreError: The store failed before translation started.
        """

        try:
            for event in self.iter_events():
                self._notify(event)
        except StoreError as exc:
            if self.progress is not None:
                self.progress.on_error(str(exc))
            raise
        if self._outcome is None:
            raise RuntimeError("Session events ended without a terminal outcome.")
        return self._outcome

    def iter_events(self) -> Iterator[ReconciliationEvent]:
        """Yield reconciliation events in delta order, ending with one terminal event.

        The final outcome is persisted before the terminal event is yielded.
        """

        if self._started:
            raise RuntimeError("A translation session can only be run once.")
        self._started = True

        document = self._segment()
        total = len(document)
        if total == 0:
            self._log_event("segment", "empty_document")
            yield self._finish_without_transport(document, TranslationStatus.NOT_TRANSLATED)
            return

        cached = self._cached_record(document)
        if cached is not None:
            yield self._finish_without_transport(document, TranslationStatus.COMPLETED, cached)
            return

        self._checkpoint(document, (), required=True)
        reconciler = StreamReconciler(
            total_units=total,
            codec=self.codec,
            settings=self.settings.reconciler,
        )
        terminal = yield from self._stream(document, reconciler)
        self._settle(document, terminal)
        self.persist()
        yield terminal

    def persist(self) -> TranslationRecord | None:
        """Commit the final outcome to the store; safe to retry after a failure.

        Returns:
            The stored record, or `None` when nothing needs storing (no store,
            empty document, or an outcome served from the store itself).
        """

        outcome = self._outcome
        if outcome is None:
            raise RuntimeError("The session has not finished; there is no outcome to persist.")
        if self.store is None or outcome.from_cache or len(outcome.document) == 0:
            return None

        self._log_start("persist", status=outcome.status.name.lower())
        try:
            record = self.store.commit(
                self.chapter_id,
                outcome.document.texts(),
                outcome.translations,
                outcome.status,
            )
        except StoreError as exc:
            self._log_failure("persist", exc)
            raise PersistenceError(
                f"Failed to persist translation for chapter `{self.chapter_id}`: {exc}",
                outcome=outcome,
            ) from exc
        self._log_complete("persist", status=record.status.name.lower())
        return record

    def _segment(self) -> Document:
        self._log_start("segment", chars=len(self.text))
        document = self.segmenter.segment(self.text)
        self._document = document
        self._log_complete("segment", units=len(document))
        return document

    def _cached_record(self, document: Document) -> TranslationRecord | None:
        """Return a reusable completed record, or reset the stored one when reuse is off."""

        if self.store is None:
            return None
        if not self.settings.reuse_cached:
            self.store.clear(self.chapter_id)
            self._log_event("cache", "cleared")
            return None

        record = self.store.load(self.chapter_id)
        if (
            record is not None
            and record.status is TranslationStatus.COMPLETED
            and record.original_sentences == tuple(document.texts())
            and len(record.translated_sentences) == len(document)
        ):
            self._log_event("cache", "hit", units=len(document))
            return record
        self._log_event("cache", "miss")
        return None

    def _stream(
        self,
        document: Document,
        reconciler: StreamReconciler,
    ) -> Iterator[ReconciliationEvent]:
        """Feed transport deltas into the reconciler; return the terminal event."""

        source_language = detect_language(self.text)
        prompt = self.codec.encode(
            document.units,
            self.settings.target_language,
            source_language=source_language.value,
        )
        max_tokens = self.settings.max_tokens_factor * len(self.text)
        self._log_start(
            "transport",
            units=len(document),
            source_language=source_language.value,
            max_tokens=max_tokens,
        )

        try:
            stream = self.transport.stream(
                prompt,
                system_prompt=self.codec.prompts.translation_system_prompt(),
                max_tokens=max_tokens,
            )
        except TransportError as exc:
            self._log_failure("transport", exc, kind=exc.failure_kind)
            return reconciler.fail(str(exc))
        deltas = iter(stream)
        delta_count = 0
        try:
            while True:
                if self.cancellation.is_cancelled():
                    return reconciler.cancel()
                try:
                    delta = next(deltas)
                except StopIteration:
                    return reconciler.finish()
                except TransportError as exc:
                    self._log_failure("transport", exc, kind=exc.failure_kind)
                    return reconciler.fail(str(exc))
                if self.cancellation.is_cancelled():
                    return reconciler.cancel()

                if self._state is SessionState.IDLE:
                    self._state = SessionState.TRANSLATING
                delta_count += 1
                committed_before = len(reconciler.committed)
                event = reconciler.feed(delta.content)
                logger.debug(
                    "session {} delta={} chars={} committed={}",
                    self.chapter_id,
                    delta_count,
                    len(delta.content),
                    event.committed_count,
                )
                if self.settings.persist_progress and event.committed_count > committed_before:
                    self._checkpoint(document, tuple(sentence.text for sentence in event.committed))
                yield event
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                close()
            self._log_event(
                "reconcile",
                "summary",
                deltas=delta_count,
                scans=reconciler.scan_count,
                committed=len(reconciler.committed),
            )

    def _settle(self, document: Document, terminal: ReconciliationEvent) -> None:
        """Record the final state and outcome for a terminal event."""

        committed = terminal.committed
        error: str | None = None
        if terminal.error is not None:
            self._state = SessionState.FAILED
            self._failure_reason = terminal.error
            error = terminal.error
        elif terminal.cancelled:
            self._state = SessionState.CANCELLED
            self._log_event("transport", "cancelled", committed=len(committed))
        else:
            self._state = SessionState.COMPLETE
            self._log_complete("transport", committed=len(committed))

        # Every unit committed is a full translation even when the stream stopped early.
        complete = len(committed) == len(document)
        status = TranslationStatus.COMPLETED if complete else TranslationStatus.ERROR
        if terminal.complete and not complete:
            error = f"Expected {len(document)} translated sentences, received {len(committed)}."
            self._log_stage_warning(
                "reconcile",
                "count_mismatch",
                expected=len(document),
                received=len(committed),
            )

        self._outcome = SessionOutcome(
            chapter_id=self.chapter_id,
            document=document,
            committed=committed,
            partial=terminal.partial,
            state=self._state,
            status=status,
            error=error,
        )

    def _finish_without_transport(
        self,
        document: Document,
        status: TranslationStatus,
        record: TranslationRecord | None = None,
    ) -> ReconciliationEvent:
        """Complete the session from the store (or from an empty document)."""

        committed: tuple[CommittedSentence, ...] = ()
        if record is not None:
            committed = tuple(
                CommittedSentence(ordinal=index, text=text)
                for index, text in enumerate(record.translated_sentences, start=1)
            )
        partial = PartialPreview.empty(len(committed) + 1)
        self._state = SessionState.COMPLETE
        self._outcome = SessionOutcome(
            chapter_id=self.chapter_id,
            document=document,
            committed=committed,
            partial=partial,
            state=self._state,
            status=status,
            from_cache=record is not None,
        )
        return ReconciliationEvent(
            committed=committed,
            partial=partial,
            translating=False,
            complete=True,
        )

    def _checkpoint(
        self,
        document: Document,
        translations: tuple[str, ...],
        *,
        required: bool = False,
    ) -> None:
        """Store the committed prefix with status `TRANSLATING`.

        The start marker is required; later checkpoints are best-effort and a
        failure only logs a warning, since the final commit supersedes them.
        """

        if self.store is None:
            return
        try:
            self.store.commit(
                self.chapter_id,
                document.texts(),
                translations,
                TranslationStatus.TRANSLATING,
            )
        except StoreError as exc:
            if required:
                self._state = SessionState.FAILED
                self._failure_reason = str(exc)
                self._log_failure("persist", exc)
                raise
            self._log_stage_warning(
                "persist",
                "checkpoint_failed",
                error_type=type(exc).__name__,
                committed=len(translations),
            )

    def _notify(self, event: ReconciliationEvent) -> None:
        if self.progress is None:
            return
        total = len(self._document) if self._document is not None else 0
        self.progress.on_event(
            event.committed_count,
            total,
            event.partial.text,
            event.complete,
        )
        if event.error is not None:
            self.progress.on_error(event.error)

    def _log_start(self, stage: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_stage_start(stage, chapter=self.chapter_id, **context)

    def _log_complete(self, stage: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_stage_complete(stage, chapter=self.chapter_id, **context)

    def _log_event(self, stage: str, event: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_stage_event(stage, event, chapter=self.chapter_id, **context)

    def _log_stage_warning(self, stage: str, event: str, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_stage_warning(stage, event, chapter=self.chapter_id, **context)

    def _log_failure(self, stage: str, exc: Exception, **context: object) -> None:
        if self._run_logger is not None:
            self._run_logger.log_stage_failure(
                stage,
                type(exc).__name__,
                chapter=self.chapter_id,
                **context,
            )

"""Core datatypes shared across Bilingua modules.

Responsibilities:
- Represent immutable records exchanged between segmentation, streaming, and storage.
- Provide explicit typing for reproducibility and serialization.

Key types:
- `SentenceUnit`, `Document`, `CommittedSentence`, `PartialPreview`,
  `ReconciliationEvent`, `TextDelta`, `TranslationRecord`, `SentencePair`,
  and `SessionOutcome`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Iterator


class SessionState(str, Enum):
    """Lifecycle state of one translation session."""

    IDLE = "idle"
    TRANSLATING = "translating"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Return whether no further transitions can happen from this state."""

        return self in {SessionState.COMPLETE, SessionState.CANCELLED, SessionState.FAILED}


class TranslationStatus(int, Enum):
    """Persisted chapter translation status codes."""

    NOT_TRANSLATED = 0
    TRANSLATING = 1
    COMPLETED = 2
    ERROR = 3

    @property
    def description(self) -> str:
        """Return a short human-readable status label."""

        return {
            TranslationStatus.NOT_TRANSLATED: "not translated",
            TranslationStatus.TRANSLATING: "translating",
            TranslationStatus.COMPLETED: "completed",
            TranslationStatus.ERROR: "error",
        }[self]


@dataclass(frozen=True, slots=True)
class SentenceUnit:
    """One segmented source sentence.

    Attributes:
        ordinal: 1-based position within its document.
        text: Trimmed, non-empty sentence text.
    """

    ordinal: int
    text: str


@dataclass(frozen=True, slots=True)
class Document:
    """Ordered sentence units segmented from one chapter text."""

    units: tuple[SentenceUnit, ...] = ()

    @classmethod
    def from_texts(cls, texts: Iterable[str]) -> Document:
        """Build a document with contiguous ordinals from plain sentence strings."""

        return cls(
            units=tuple(
                SentenceUnit(ordinal=index, text=text)
                for index, text in enumerate(texts, start=1)
            )
        )

    def texts(self) -> list[str]:
        """Return unit texts in ordinal order."""

        return [unit.text for unit in self.units]

    def __len__(self) -> int:
        return len(self.units)

    def __iter__(self) -> Iterator[SentenceUnit]:
        return iter(self.units)


@dataclass(frozen=True, slots=True)
class CommittedSentence:
    """Finalized translation for one source ordinal."""

    ordinal: int
    text: str


@dataclass(frozen=True, slots=True)
class PartialPreview:
    """Best-known in-progress translation for the next uncommitted ordinal."""

    ordinal: int
    text: str = ""

    @classmethod
    def empty(cls, ordinal: int) -> PartialPreview:
        """Return an empty preview for an ordinal."""

        return cls(ordinal=ordinal, text="")


@dataclass(frozen=True, slots=True)
class TextDelta:
    """One text fragment received from the generation stream."""

    content: str


@dataclass(frozen=True, slots=True)
class ReconciliationEvent:
    """Snapshot emitted after each reconciliation step.

    Attributes:
        committed: Committed sentences, ordinals exactly `1..len(committed)`.
        partial: Preview of the next expected sentence.
        translating: Whether the stream is still open.
        complete: Whether the stream drained normally.
        cancelled: Whether the stream was cancelled by the caller.
        error: Transport failure reason, if the stream failed.
    """

    committed: tuple[CommittedSentence, ...]
    partial: PartialPreview
    translating: bool = True
    complete: bool = False
    cancelled: bool = False
    error: str | None = None

    @property
    def committed_count(self) -> int:
        """Return the number of committed sentences in this snapshot."""

        return len(self.committed)

    @property
    def is_terminal(self) -> bool:
        """Return whether this event closes the stream."""

        return not self.translating


@dataclass(frozen=True, slots=True)
class TranslationRecord:
    """Persisted translation state for one chapter.

    Attributes:
        chapter_id: Chapter identity key.
        original_sentences: Ordered source sentences.
        translated_sentences: Ordered translated sentences.
        status: Persisted translation status.
        updated_at: Last modification timestamp (UTC).
    """

    chapter_id: str
    original_sentences: tuple[str, ...]
    translated_sentences: tuple[str, ...]
    status: TranslationStatus
    updated_at: datetime

    def validate(self) -> None:
        """Validate record invariants before persisting."""

        if not self.chapter_id.strip():
            raise ValueError("`chapter_id` must be a non-empty string.")
        if self.status is TranslationStatus.COMPLETED:
            if not self.original_sentences or not self.translated_sentences:
                raise ValueError("Completed records require non-empty sentence lists.")
            if len(self.original_sentences) != len(self.translated_sentences):
                raise ValueError(
                    "Completed records require equal original/translated sentence counts "
                    f"({len(self.original_sentences)} != {len(self.translated_sentences)})."
                )

    def same_content(
        self,
        original_sentences: tuple[str, ...],
        translated_sentences: tuple[str, ...],
        status: TranslationStatus,
    ) -> bool:
        """Return whether the record already holds exactly this content."""

        return (
            self.original_sentences == original_sentences
            and self.translated_sentences == translated_sentences
            and self.status is status
        )


@dataclass(frozen=True, slots=True)
class SentencePair:
    """Display pairing of one original sentence with its translation."""

    original: str
    translation: str = ""
    is_translating: bool = False
    is_complete: bool = False


def build_sentence_pairs(
    originals: Iterable[str],
    translations: Iterable[str],
    partial: PartialPreview | None = None,
    translating: bool = False,
) -> list[SentencePair]:
    """Pair originals with committed translations and the in-flight preview."""

    translated = list(translations)
    pairs: list[SentencePair] = []
    for index, original in enumerate(originals):
        ordinal = index + 1
        in_flight = translating and partial is not None and partial.ordinal == ordinal
        if index < len(translated):
            pairs.append(SentencePair(original=original, translation=translated[index], is_complete=True))
        elif in_flight:
            pairs.append(SentencePair(original=original, translation=partial.text, is_translating=True))
        else:
            pairs.append(SentencePair(original=original))
    return pairs


@dataclass(frozen=True, slots=True)
class SessionOutcome:
    """Final result of one translation session.

    Attributes:
        chapter_id: Chapter identity key.
        document: Segmented source document.
        committed: Committed sentences at session end.
        partial: Last partial preview (empty for completed sessions).
        state: Final session state.
        status: Status persisted (or to be persisted) for the chapter.
        error: Failure reason for failed sessions, or count mismatch detail.
        from_cache: Whether the outcome was served from a stored record.
    """

    chapter_id: str
    document: Document
    committed: tuple[CommittedSentence, ...]
    partial: PartialPreview
    state: SessionState
    status: TranslationStatus
    error: str | None = None
    from_cache: bool = False

    @property
    def translations(self) -> list[str]:
        """Return committed translation texts in ordinal order."""

        return [sentence.text for sentence in self.committed]

    @property
    def is_complete_translation(self) -> bool:
        """Return whether every source unit received a committed translation."""

        return len(self.document) > 0 and len(self.committed) == len(self.document)

    def sentence_pairs(self) -> list[SentencePair]:
        """Return display pairs for the outcome."""

        return build_sentence_pairs(
            self.document.texts(),
            self.translations,
            partial=self.partial,
            translating=self.state is SessionState.TRANSLATING,
        )


class DisplayMode(str, Enum):
    """How stored sentence pairs are rendered for reading."""

    BILINGUAL = "bilingual"
    ORIGINAL = "original"
    TRANSLATION = "translation"

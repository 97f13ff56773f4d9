"""Shared typed data models for Bilingua.

This package contains dataclasses used across segmentation, streaming, and
storage modules to avoid cross-module coupling and circular imports.
"""

from .datatypes import (
    CommittedSentence,
    DisplayMode,
    Document,
    PartialPreview,
    ReconciliationEvent,
    SentencePair,
    SentenceUnit,
    SessionOutcome,
    SessionState,
    TextDelta,
    TranslationRecord,
    TranslationStatus,
    build_sentence_pairs,
)

__all__ = [
    "CommittedSentence",
    "DisplayMode",
    "Document",
    "PartialPreview",
    "ReconciliationEvent",
    "SentencePair",
    "SentenceUnit",
    "SessionOutcome",
    "SessionState",
    "TextDelta",
    "TranslationRecord",
    "TranslationStatus",
    "build_sentence_pairs",
]

"""Input/output adapters for chapter text and translation records."""

from .chapters import ChapterSource, DirectoryChapterSource
from .store import (
    InMemoryTranslationStore,
    JsonFileTranslationStore,
    TranslationStore,
    record_from_payload,
    record_to_payload,
)

__all__ = [
    "ChapterSource",
    "DirectoryChapterSource",
    "InMemoryTranslationStore",
    "JsonFileTranslationStore",
    "TranslationStore",
    "record_from_payload",
    "record_to_payload",
]

"""Text preprocessing and segmentation components.

This package provides deterministic cleanup, language detection, and sentence
segmentation used before numbered prompts are built.
"""

from .cleaners import (
    BlockTagsToParagraphs,
    CollapseWhitespace,
    DecodeEntities,
    NormalizeLineEndings,
    StripTags,
    TextCleaner,
)
from .language import TextLanguage, detect_language
from .segmenter import Segmenter
from .slug import chapter_storage_key, slugify_chapter_id

__all__ = [
    "BlockTagsToParagraphs",
    "CollapseWhitespace",
    "DecodeEntities",
    "NormalizeLineEndings",
    "Segmenter",
    "StripTags",
    "TextCleaner",
    "TextLanguage",
    "chapter_storage_key",
    "detect_language",
    "slugify_chapter_id",
]

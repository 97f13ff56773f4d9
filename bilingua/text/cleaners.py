"""Deterministic cleanup rules for crawled chapter text.

Responsibilities:
- Turn chapter markup handed over by the crawler into plain prose.
- Preserve paragraph breaks so the segmenter can treat them as boundaries.
"""

from __future__ import annotations

import html
import re
from typing import Protocol


class CleanerRule(Protocol):
    """Protocol for text cleaning rules."""

    def apply(self, text: str) -> str:
        """Apply a single cleaning transformation."""


class NormalizeLineEndings:
    """Convert CRLF/CR line endings to LF."""

    def apply(self, text: str) -> str:
        return text.replace("\r\n", "\n").replace("\r", "\n")


class BlockTagsToParagraphs:
    """Replace block-level tags and line-break tags with line breaks."""

    _BREAK_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
    _BLOCK_RE = re.compile(
        r"</?(?:p|div|section|article|h[1-6]|li|ul|ol|blockquote|tr)\b[^>]*>",
        re.IGNORECASE,
    )

    def apply(self, text: str) -> str:
        """Map `<br>` to a soft break and block tags to paragraph breaks."""

        text = self._BREAK_RE.sub("\n", text)
        return self._BLOCK_RE.sub("\n\n", text)


class StripTags:
    """Remove remaining inline markup, including ruby annotations."""

    _RUBY_ANNOTATION_RE = re.compile(r"<(rt|rp)\b[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
    _TAG_RE = re.compile(r"<[^>]+>")

    def apply(self, text: str) -> str:
        """Drop furigana annotations and then every remaining tag."""

        text = self._RUBY_ANNOTATION_RE.sub("", text)
        return self._TAG_RE.sub("", text)


class DecodeEntities:
    """Decode HTML character references."""

    def apply(self, text: str) -> str:
        return html.unescape(text).replace("\xa0", " ")


class CollapseWhitespace:
    """Normalize horizontal whitespace and squeeze blank-line runs."""

    def apply(self, text: str) -> str:
        """Collapse spaces/tabs, strip line tails, and limit blank lines to one."""

        text = re.sub(r"[ \t]+", " ", text)
        text = re.sub(r" *\n *", "\n", text)
        return re.sub(r"\n{3,}", "\n\n", text).strip()


class TextCleaner:
    """Apply a sequence of deterministic cleaner rules."""

    def __init__(self, rules: list[CleanerRule] | None = None) -> None:
        """Initialize with custom rules or the default markup-to-prose sequence."""

        self.rules = rules or [
            NormalizeLineEndings(),
            BlockTagsToParagraphs(),
            StripTags(),
            DecodeEntities(),
            CollapseWhitespace(),
        ]

    def clean(self, text: str) -> str:
        """Apply all configured rules in order."""

        current = text
        for rule in self.rules:
            current = rule.apply(current)
        return current

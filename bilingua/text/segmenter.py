"""Sentence segmentation for multilingual chapter prose.

Responsibilities:
- Split raw chapter text into ordered sentence units for numbered prompts.
- Keep boundaries deterministic across Latin, CJK, and Japanese punctuation.

Boundary rules:
- A terminal mark closes a sentence unless the next character is a lowercase
  letter or digit (abbreviations, decimals).
- Closing quotes/brackets directly after a terminal mark stay in the sentence.
- A blank line always closes a sentence; a single line break is a space.
- Stray punctuation fragments are merged into the following sentence.
"""

from __future__ import annotations

import re

from ..models.datatypes import Document


class Segmenter:
    """Split text into a `Document` of sentence units."""

    TERMINAL_MARKS = frozenset(".!?。！？．…‥⋯")
    CLOSING_MARKS = frozenset("\"'”’」』）)］]】》〉»›｝}")
    MIN_FRAGMENT_CHARS = 3

    _WHITESPACE_RE = re.compile(r"\s+")

    def segment(self, text: str) -> Document:
        """Segment raw text into sentence units.

        Args:
            text: Raw chapter text; may be empty or whitespace only.

        Returns:
            Document with contiguous 1-based ordinals; empty when no sentence survives trimming.
        """

        if not text or not text.strip():
            return Document()

        raw_sentences = self._split_boundaries(self._normalize_line_endings(text))
        collapsed = [self._collapse(sentence) for sentence in raw_sentences]
        merged = self._merge_fragments([sentence for sentence in collapsed if sentence])
        return Document.from_texts(merged)

    def split(self, text: str) -> list[str]:
        """Return sentence texts only."""

        return self.segment(text).texts()

    @staticmethod
    def _normalize_line_endings(text: str) -> str:
        return text.replace("\r\n", "\n").replace("\r", "\n")

    def _split_boundaries(self, text: str) -> list[str]:
        """Scan characters and cut sentences at terminal marks and blank lines."""

        sentences: list[str] = []
        current: list[str] = []
        length = len(text)
        index = 0

        while index < length:
            character = text[index]

            if character == "\n":
                next_index, newline_count = self._consume_line_breaks(text, index)
                if newline_count >= 2:
                    sentences.append("".join(current))
                    current = []
                else:
                    current.append(" ")
                index = next_index
                continue

            current.append(character)
            index += 1
            if character not in self.TERMINAL_MARKS:
                continue

            while index < length and text[index] in self.TERMINAL_MARKS:
                current.append(text[index])
                index += 1

            if index < length and text[index] in self.CLOSING_MARKS:
                while index < length and text[index] in self.CLOSING_MARKS:
                    current.append(text[index])
                    index += 1
            elif index < length and self._continues_sentence(text[index]):
                continue

            sentences.append("".join(current))
            current = []

        if current:
            sentences.append("".join(current))
        return sentences

    @staticmethod
    def _consume_line_breaks(text: str, index: int) -> tuple[int, int]:
        """Consume a run of line breaks (blank lines may hold spaces/tabs)."""

        length = len(text)
        newline_count = 0
        cursor = index
        last_break_end = index
        while cursor < length:
            if text[cursor] == "\n":
                newline_count += 1
                cursor += 1
                last_break_end = cursor
            elif text[cursor] in " \t　":
                cursor += 1
            else:
                break
        return last_break_end, newline_count

    @staticmethod
    def _continues_sentence(character: str) -> bool:
        """Return whether a character after a terminal mark keeps the sentence open."""

        return character.isdigit() or (character.isalpha() and character.islower())

    def _collapse(self, sentence: str) -> str:
        return self._WHITESPACE_RE.sub(" ", sentence).strip()

    def _merge_fragments(self, sentences: list[str]) -> list[str]:
        """Merge stray punctuation fragments into their successor (or predecessor at the end)."""

        merged: list[str] = []
        carry = ""
        for sentence in sentences:
            candidate = self._join(carry, sentence) if carry else sentence
            if self._is_fragment(candidate):
                carry = candidate
                continue
            merged.append(candidate)
            carry = ""

        if carry:
            if merged:
                merged[-1] = self._join(merged[-1], carry)
            else:
                merged.append(carry)
        return merged

    def _is_fragment(self, sentence: str) -> bool:
        return len(sentence) < self.MIN_FRAGMENT_CHARS and not any(
            character.isalnum() for character in sentence
        )

    @staticmethod
    def _join(left: str, right: str) -> str:
        """Join two pieces, without a space when either side touches CJK text."""

        if not left:
            return right
        if not right:
            return left
        if _is_wide(left[-1]) or _is_wide(right[0]):
            return f"{left}{right}"
        return f"{left} {right}"


def _is_wide(character: str) -> bool:
    """Return whether a character belongs to CJK/Japanese scripts or fullwidth punctuation."""

    return ord(character) >= 0x2E80

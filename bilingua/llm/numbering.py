"""Numbered-line wire convention between sentence units and the model stream.

Responsibilities:
- Encode sentence units as `"{ordinal}. {text}"` lines inside a translation prompt.
- Decode streamed lines back into `(ordinal, text)` pairs; anything else is noise.

The convention is line-oriented with no escaping: only a line-leading
`digits + "." + space` is special, so periods inside sentence text are fine.
"""

from __future__ import annotations

import re
from typing import Sequence

from ..models.datatypes import SentenceUnit
from .prompts import PromptLibrary


class NumberingCodec:
    """Encode numbered prompts and decode numbered response lines."""

    _LINE_RE = re.compile(r"^\s*(\d+)\.[ \t]+(\S.*?)\s*$")

    def __init__(self, prompts: PromptLibrary | None = None) -> None:
        """Initialize with the prompt library used for instruction wording."""

        self.prompts = prompts if prompts is not None else PromptLibrary()

    @staticmethod
    def render_units(units: Sequence[SentenceUnit]) -> str:
        """Render units as newline-joined numbered lines."""

        return "\n".join(f"{unit.ordinal}. {unit.text}" for unit in units)

    def encode(
        self,
        units: Sequence[SentenceUnit],
        target_language: str,
        source_language: str | None = None,
    ) -> str:
        """Return the full user prompt for translating every unit in order."""

        return self.prompts.numbered_translation_prompt(
            numbered_lines=self.render_units(units),
            sentence_count=len(units),
            target_language=target_language,
            source_language=source_language,
        )

    def decode_line(self, line: str) -> tuple[int, str] | None:
        """Decode one response line into `(ordinal, text)` or `None` for noise."""

        match = self._LINE_RE.match(line)
        if match is None:
            return None
        return int(match.group(1)), match.group(2)

    @staticmethod
    def numbered_prefix(ordinal: int) -> str:
        """Return the line prefix marking an ordinal (without the trailing space)."""

        return f"{ordinal}."

    def partial_text(self, line: str, ordinal: int) -> str | None:
        """Return the in-progress text of a line started for `ordinal`, if it is one.

        The text is returned as-is (possibly empty or a single character); `None`
        means the line does not start with the ordinal's prefix.
        """

        stripped = line.strip()
        prefix = self.numbered_prefix(ordinal)
        if not stripped.startswith(prefix):
            return None
        remainder = stripped[len(prefix):]
        if remainder and not remainder[0].isspace():
            return None
        return remainder.strip()

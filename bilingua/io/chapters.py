"""Chapter text sources.

Responsibilities:
- Resolve a chapter identity to its raw text.
- Clean HTML chapter markup into plain paragraphs before segmentation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from ..text.cleaners import TextCleaner


class ChapterSource(Protocol):
    """Protocol for resolving chapter identities to chapter text."""

    def raw_chapter_text(self, chapter_id: str) -> str | None:
        """Return the plain text of a chapter, or `None` when it is unknown."""

    def load(self, chapter_id: str) -> str:
        """Return the plain text of a chapter, raising when it is unknown."""

    def list_chapters(self) -> list[str]:
        """Return known chapter identities in deterministic order."""


class DirectoryChapterSource:
    """Read chapters stored as `<chapter_id>.txt` or `<chapter_id>.html` files."""

    _TEXT_SUFFIXES = (".txt",)
    _HTML_SUFFIXES = (".html", ".htm")

    def __init__(self, root: Path, cleaner: TextCleaner | None = None) -> None:
        self.root = root
        self.cleaner = cleaner or TextCleaner()

    def path_for(self, chapter_id: str) -> Path:
        """Return the first existing chapter file for an identity.

        Raises:
            ValueError: The identity would escape the chapter directory.
            FileNotFoundError: No chapter file exists for the identity.
        """

        if not chapter_id.strip() or Path(chapter_id).name != chapter_id:
            raise ValueError(f"Invalid chapter identity `{chapter_id}`.")
        for suffix in self._TEXT_SUFFIXES + self._HTML_SUFFIXES:
            candidate = self.root / f"{chapter_id}{suffix}"
            if candidate.is_file():
                return candidate
        raise FileNotFoundError(f"No chapter file for `{chapter_id}` under `{self.root}`.")

    def load(self, chapter_id: str) -> str:
        """Return chapter text, cleaning HTML markup when the file is HTML."""

        path = self.path_for(chapter_id)
        raw_text = path.read_text(encoding="utf-8")
        if path.suffix.lower() in self._HTML_SUFFIXES:
            return self.cleaner.clean(raw_text)
        return raw_text

    def raw_chapter_text(self, chapter_id: str) -> str | None:
        """Return cleaned chapter text, or `None` when no chapter file exists."""

        try:
            return self.load(chapter_id)
        except FileNotFoundError:
            return None

    def list_chapters(self) -> list[str]:
        if not self.root.is_dir():
            return []
        suffixes = set(self._TEXT_SUFFIXES + self._HTML_SUFFIXES)
        identities = {
            path.stem
            for path in self.root.iterdir()
            if path.is_file() and path.suffix.lower() in suffixes
        }
        return sorted(identities)

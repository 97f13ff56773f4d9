"""Unit tests for the directory-backed chapter text source."""

from __future__ import annotations

from pathlib import Path

import pytest

from bilingua.io.chapters import DirectoryChapterSource


@pytest.fixture
def chapters_dir(tmp_path: Path) -> Path:
    root = tmp_path / "chapters"
    root.mkdir()
    (root / "ch-1.txt").write_text("Plain <b>text</b> stays.", encoding="utf-8")
    (root / "ch-2.html").write_text("<p>First.</p><p>Second&amp;last.</p>", encoding="utf-8")
    (root / "ch-3.HTM").write_text("<div>Upper</div>", encoding="utf-8")
    (root / "cover.png").write_bytes(b"\x89PNG")
    (root / "drafts").mkdir()
    return root


def test_raw_chapter_text_reads_plain_text_verbatim(chapters_dir: Path) -> None:
    source = DirectoryChapterSource(chapters_dir)

    assert source.raw_chapter_text("ch-1") == "Plain <b>text</b> stays."


def test_raw_chapter_text_cleans_html_chapters(chapters_dir: Path) -> None:
    source = DirectoryChapterSource(chapters_dir)

    assert source.raw_chapter_text("ch-2") == "First.\n\nSecond&last."


def test_raw_chapter_text_returns_none_for_unknown_chapter(chapters_dir: Path) -> None:
    source = DirectoryChapterSource(chapters_dir)

    assert source.raw_chapter_text("ch-404") is None
    with pytest.raises(FileNotFoundError, match="ch-404"):
        source.load("ch-404")


@pytest.mark.parametrize("chapter_id", ["../secrets", "nested/ch-1", "  "])
def test_chapter_source_rejects_identities_outside_root(
    chapters_dir: Path, chapter_id: str
) -> None:
    source = DirectoryChapterSource(chapters_dir)

    with pytest.raises(ValueError, match="Invalid chapter identity"):
        source.raw_chapter_text(chapter_id)


def test_list_chapters_returns_sorted_text_and_html_stems(
    chapters_dir: Path, tmp_path: Path
) -> None:
    assert DirectoryChapterSource(chapters_dir).list_chapters() == ["ch-1", "ch-2", "ch-3"]
    assert DirectoryChapterSource(tmp_path / "missing").list_chapters() == []

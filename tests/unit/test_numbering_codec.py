"""Unit tests for the numbered-line prompt codec."""

from __future__ import annotations

from bilingua.llm.numbering import NumberingCodec
from bilingua.models.datatypes import Document


def test_encode_renders_numbered_lines_and_states_count() -> None:
    """Prompt should contain every unit with its ordinal prefix and the exact count."""

    document = Document.from_texts(["First line.", "Second line."])

    prompt = NumberingCodec().encode(document.units, "中文", source_language="English")

    assert "1. First line.\n2. Second line." in prompt
    assert "all 2 sentences" in prompt
    assert "中文" in prompt
    assert "English" in prompt


def test_decode_line_accepts_numbered_lines() -> None:
    """Lines with digits, a dot, whitespace, and text decode into pairs."""

    codec = NumberingCodec()

    assert codec.decode_line("1. Foo") == (1, "Foo")
    assert codec.decode_line("  12.\tBar baz.  ") == (12, "Bar baz.")
    assert codec.decode_line("3. 他说：1. 不是编号") == (3, "他说：1. 不是编号")


def test_decode_line_rejects_noise() -> None:
    """Anything not matching the numbered convention is noise, not an error."""

    codec = NumberingCodec()

    assert codec.decode_line("Here is the translation:") is None
    assert codec.decode_line("1.Foo") is None
    assert codec.decode_line("1. ") is None
    assert codec.decode_line("") is None
    assert codec.decode_line("a. Foo") is None


def test_partial_text_matches_only_the_exact_ordinal_prefix() -> None:
    """Preview extraction should not confuse ordinal 1 with ordinal 12."""

    codec = NumberingCodec()

    assert codec.partial_text("1. Fo", 1) == "Fo"
    assert codec.partial_text("1.", 1) == ""
    assert codec.partial_text("12. Foo", 1) is None
    assert codec.partial_text("2. Foo", 1) is None

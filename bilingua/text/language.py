"""Dominant-script detection used for prompt hints and logs."""

from __future__ import annotations

from enum import Enum


_SAMPLE_CHARS = 200


class TextLanguage(str, Enum):
    """Coarse source-language classes distinguished by script."""

    CHINESE = "Chinese"
    JAPANESE = "Japanese"
    ENGLISH = "English"


def detect_language(text: str) -> TextLanguage:
    """Classify text by counting kana, CJK ideographs, and Latin letters.

    Only the first 200 characters are sampled. Kana wins only when it outnumbers
    both other scripts; ideographs win over Latin letters; ties fall back to English.
    """

    kana = 0
    ideographs = 0
    latin = 0
    for character in text[:_SAMPLE_CHARS]:
        if "\u3040" <= character <= "\u30ff":
            kana += 1
        elif "\u4e00" <= character <= "\u9fff":
            ideographs += 1
        elif ("A" <= character <= "Z") or ("a" <= character <= "z"):
            latin += 1

    if kana > ideographs and kana > latin:
        return TextLanguage.JAPANESE
    if ideographs > latin:
        return TextLanguage.CHINESE
    return TextLanguage.ENGLISH

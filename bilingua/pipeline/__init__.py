"""Bilingua translation session package.

This package contains the per-chapter session that ties segmentation, the
numbered prompt, stream reconciliation, and persistence together.
"""

from .session import CancellationToken, ProgressSink, SessionSettings, TranslationSession

__all__ = ["CancellationToken", "ProgressSink", "SessionSettings", "TranslationSession"]

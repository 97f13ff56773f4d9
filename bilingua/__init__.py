"""Top-level package for Bilingua.

This package translates chapter text sentence by sentence through a streamed,
numbered-line exchange with an OpenAI-compatible chat model, committing each
translated sentence as soon as it is complete. The main entry point is
`TranslationSession`.
"""

from loguru import logger

from .pipeline import CancellationToken, SessionSettings, TranslationSession

# Library modules stay silent until an application opts in (see `RunLogger`).
logger.disable("bilingua")

__all__ = ["CancellationToken", "SessionSettings", "TranslationSession", "__version__"]

__version__ = "0.1.0"

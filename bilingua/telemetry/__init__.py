"""Runtime logging for translation sessions."""

from .logger import RunLogger

__all__ = ["RunLogger"]

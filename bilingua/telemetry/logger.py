"""Structured session logging utilities.

Responsibilities:
- Emit concise, deterministic stage-level runtime logs through `loguru`.
- Keep prompt text, translations, and credentials out of log context.
"""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
    ]
    return " " + " ".join(tokens)


class RunLogger:
    """Emit deterministic stage logs for CLI-observable session activity."""

    def __init__(self, sink: TextIO | None = None, *, verbose: bool = False) -> None:
        """Route `loguru` output to `sink` with a bare message format.

        Enables the `bilingua` namespace, which the package disables on import.
        With `verbose` the per-delta debug records of library modules are shown too.
        """

        self._sink = sink or sys.stderr
        logger.remove()
        logger.enable("bilingua")
        logger.add(
            self._sink,
            format="{message}",
            level="DEBUG" if verbose else "INFO",
            colorize=False,
        )

    def _emit(self, level: str, event: str, stage: str, **context: object) -> None:
        """Emit one structured runtime log line."""

        line = f"[phase] level={level} stage={stage} event={event}{_format_context(context)}"
        logger.log(level, line)

    def log_stage_start(self, stage: str, **context: object) -> None:
        """Emit a stage-start runtime event."""

        self._emit("INFO", "start", stage, **context)

    def log_stage_complete(self, stage: str, **context: object) -> None:
        """Emit a stage-complete runtime event."""

        self._emit("INFO", "complete", stage, **context)

    def log_stage_event(self, stage: str, event: str, **context: object) -> None:
        """Emit a named informational event inside a stage."""

        self._emit("INFO", event, stage, **context)

    def log_stage_warning(self, stage: str, event: str, **context: object) -> None:
        """Emit a recoverable problem inside a stage."""

        self._emit("WARNING", event, stage, **context)

    def log_stage_failure(self, stage: str, error_type: str, **context: object) -> None:
        """Emit a stage-failure runtime event without sensitive payload details."""

        self._emit("ERROR", "failure", stage, error_type=error_type, **context)

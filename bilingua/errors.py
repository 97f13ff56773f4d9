"""Domain exceptions for session, transport, storage, and CLI diagnostics."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models.datatypes import SessionOutcome


class StageError(RuntimeError):
    """Raised when a specific command stage fails."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class TransportError(RuntimeError):
    """Raised when the generation stream cannot be opened or breaks mid-flight."""

    def __init__(
        self,
        message: str,
        *,
        failure_kind: str = "unknown",
        status_code: int | None = None,
        provider_code: str | None = None,
    ) -> None:
        """Initialize transport error metadata for diagnostics."""

        super().__init__(message)
        self.failure_kind = failure_kind
        self.status_code = status_code
        self.provider_code = provider_code


class StoreError(RuntimeError):
    """Raised when the translation store cannot read or write a record."""


class PersistenceError(StoreError):
    """Raised when a finished session could not persist its outcome.

    The outcome is attached so callers keep the committed sentences and can
    retry the commit.
    """

    def __init__(self, message: str, *, outcome: SessionOutcome) -> None:
        """Initialize with the in-memory outcome that failed to persist."""

        super().__init__(message)
        self.outcome = outcome

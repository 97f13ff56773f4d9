"""Shared pytest fixtures for the Bilingua test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator

import pytest

from bilingua.errors import TransportError
from bilingua.models.datatypes import TextDelta


class ScriptedTransport:
    """Stream transport double yielding scripted deltas, optionally failing midway."""

    def __init__(
        self,
        deltas: list[str],
        *,
        error: TransportError | None = None,
        error_after: int | None = None,
    ) -> None:
        """Initialize with deltas and an optional error raised after `error_after` deltas."""

        self.deltas = list(deltas)
        self.error = error
        self.error_after = error_after
        self.calls: list[dict[str, object]] = []
        self.yielded = 0
        self.closed = False

    def stream(
        self,
        prompt: str,
        *,
        system_prompt: str,
        max_tokens: int | None = None,
    ) -> Iterator[TextDelta]:
        """Record the request and return a generator over the scripted deltas."""

        self.calls.append(
            {"prompt": prompt, "system_prompt": system_prompt, "max_tokens": max_tokens}
        )
        return self._generate()

    def _generate(self) -> Iterator[TextDelta]:
        try:
            for index, delta in enumerate(self.deltas):
                if self.error is not None and self.error_after == index:
                    raise self.error
                self.yielded += 1
                yield TextDelta(content=delta)
            if self.error is not None and (
                self.error_after is None or self.error_after >= len(self.deltas)
            ):
                raise self.error
        finally:
            self.closed = True


class RecordingProgress:
    """Progress sink double recording every notification."""

    def __init__(self, on_event_hook: Callable[[int], None] | None = None) -> None:
        """Initialize with an optional hook called with each committed count."""

        self.events: list[tuple[int, int, str, bool]] = []
        self.errors: list[str] = []
        self._hook = on_event_hook

    def on_event(
        self,
        committed_count: int,
        total: int,
        partial_preview: str,
        is_complete: bool,
    ) -> None:
        self.events.append((committed_count, total, partial_preview, is_complete))
        if self._hook is not None:
            self._hook(committed_count)

    def on_error(self, message: str) -> None:
        self.errors.append(message)


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self) -> None:
        self.current = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.calls = 0

    def __call__(self) -> datetime:
        self.calls += 1
        self.current = self.current + timedelta(seconds=1)
        return self.current


@pytest.fixture
def scripted_transport() -> type[ScriptedTransport]:
    """Provide the scripted stream transport class."""

    return ScriptedTransport


@pytest.fixture
def recording_progress() -> type[RecordingProgress]:
    """Provide the recording progress sink class."""

    return RecordingProgress


@pytest.fixture
def step_clock() -> StepClock:
    """Provide a fresh deterministic clock."""

    return StepClock()

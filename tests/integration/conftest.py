"""Integration-test fixtures for deterministic provider and credential behavior."""

from __future__ import annotations

import os
from typing import Iterator

import pytest

from bilingua.errors import TransportError
from bilingua.llm.openai_client import OpenAIChatClient


class InMemoryCredentialStore:
    """Simple in-memory credential store used for CLI tests."""

    def __init__(self, initial_api_key: str | None = None) -> None:
        """Initialize the store with an optional pre-seeded API key."""

        self._api_key = initial_api_key

    def is_available(self) -> bool:
        """Return availability flag expected by the CLI status command."""

        return True

    def get_api_key(self) -> str | None:
        """Return currently stored API key value."""

        return self._api_key

    def set_api_key(self, api_key: str) -> None:
        """Persist a normalized API key value."""

        self._api_key = api_key.strip()

    def clear_api_key(self) -> bool:
        """Clear API key and return whether one existed."""

        existed = self._api_key is not None
        self._api_key = None
        return existed


class ProviderScript:
    """Scripted provider responses shared by the patched chat client methods."""

    def __init__(self) -> None:
        self.fragments: list[str] = []
        self.error: TransportError | None = None
        self.reply = "OK"
        self.stream_calls: list[dict[str, object]] = []
        self.check_calls: list[dict[str, object]] = []


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop ambient `BILINGUA_*` variables so config defaults are deterministic."""

    for key in list(os.environ):
        if key.startswith("BILINGUA_"):
            monkeypatch.delenv(key)


@pytest.fixture(autouse=True)
def credential_store(monkeypatch: pytest.MonkeyPatch) -> InMemoryCredentialStore:
    """Replace OS keyring access with an in-memory store shared by one test."""

    store = InMemoryCredentialStore()
    monkeypatch.setattr("bilingua.cli.create_credential_store", lambda: store)
    return store


@pytest.fixture(autouse=True)
def provider(monkeypatch: pytest.MonkeyPatch) -> ProviderScript:
    """Mock OpenAI-compatible calls in integration tests to avoid network/key requirements."""

    script = ProviderScript()

    def _mock_stream_chat_completion(self, **kwargs: object) -> Iterator[str]:
        """Yield scripted fragments, then raise the scripted error if any."""

        _ = self
        script.stream_calls.append(kwargs)
        yield from script.fragments
        if script.error is not None:
            raise script.error

    def _mock_chat_completion_text(self, **kwargs: object) -> str:
        """Return the scripted connection-check reply."""

        _ = self
        script.check_calls.append(kwargs)
        if script.error is not None:
            raise script.error
        return script.reply

    monkeypatch.setattr(OpenAIChatClient, "stream_chat_completion", _mock_stream_chat_completion)
    monkeypatch.setattr(OpenAIChatClient, "chat_completion_text", _mock_chat_completion_text)
    return script

"""Secure credential storage helpers for the Bilingua CLI.

Responsibilities:
- Persist the provider API key in an OS-backed secure credential store.
- Provide deterministic read/write/delete operations for that key.
- Avoid logging or exposing secret values in diagnostics.

Key types:
- `CredentialStore`: interface for provider credential persistence.
- `KeyringCredentialStore`: keyring-backed secure credential storage.
"""

from __future__ import annotations

from dataclasses import dataclass

import keyring
from keyring.backends import fail
from keyring.errors import KeyringError, PasswordDeleteError


_DEFAULT_SERVICE_NAME = "bilingua"
_DEFAULT_ACCOUNT_NAME = "api_key"


class CredentialStore:
    """Interface for secure provider credential operations."""

    def is_available(self) -> bool:
        """Return whether secure credential operations are available."""

        raise NotImplementedError

    def get_api_key(self) -> str | None:
        """Load the stored API key from secure storage, when available."""

        raise NotImplementedError

    def set_api_key(self, api_key: str) -> None:
        """Persist an API key in secure storage."""

        raise NotImplementedError

    def clear_api_key(self) -> bool:
        """Delete a stored API key and return whether one existed."""

        raise NotImplementedError


@dataclass(slots=True)
class KeyringCredentialStore(CredentialStore):
    """Secure credential store backed by the `keyring` package."""

    service_name: str = _DEFAULT_SERVICE_NAME
    account_name: str = _DEFAULT_ACCOUNT_NAME

    def is_available(self) -> bool:
        """Return `False` when keyring resolved only its failing fallback backend."""

        return not isinstance(keyring.get_keyring(), fail.Keyring)

    def get_api_key(self) -> str | None:
        """Get a normalized API key from keyring, returning `None` when missing."""

        if not self.is_available():
            return None
        value = keyring.get_password(self.service_name, self.account_name)
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        return normalized

    def set_api_key(self, api_key: str) -> None:
        """Persist a normalized API key in keyring or raise when unavailable."""

        if not self.is_available():
            raise RuntimeError(
                "Secure credential storage is unavailable because no keyring backend "
                "is configured. Configure a `keyring` backend to persist API keys."
            )

        normalized = api_key.strip()
        if not normalized:
            raise ValueError("API key must be a non-empty string.")
        try:
            keyring.set_password(self.service_name, self.account_name, normalized)
        except KeyringError as exc:
            raise RuntimeError(f"Keyring rejected the API key: {exc}") from exc

    def clear_api_key(self) -> bool:
        """Remove the stored API key from keyring and report if one was present."""

        if self.get_api_key() is None:
            return False
        try:
            keyring.delete_password(self.service_name, self.account_name)
        except PasswordDeleteError:
            return False
        return True


def create_credential_store() -> CredentialStore:
    """Create the default secure credential store implementation."""

    return KeyringCredentialStore()

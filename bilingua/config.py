"""Configuration model and loaders for Bilingua.

Responsibilities:
- Define runtime configuration as a typed dataclass.
- Provide deterministic precedence resolution for model, language, and credentials.
- Provide loader entry points for file- and environment-based configuration.

Key types:
- `BilinguaConfig`: normalized runtime settings for translation sessions.
- `TranslatorRuntimeConfig`: resolved model/language/credential values.
- `RuntimeConfigSources`: optional value sources for precedence resolution.
- `ConfigLoader`: static construction helpers for `BilinguaConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .llm.openai_client import DEFAULT_BASE_URL
from .models.datatypes import DisplayMode
from .parsing import (
    normalize_optional_string,
    parse_non_negative_number,
    parse_positive_int,
    parse_required_boolean,
)
from .pipeline.session import SessionSettings
from .streaming.reconciler import ReconcilerSettings


_DEFAULT_MODEL = "Qwen/Qwen3-8B"
_DEFAULT_TARGET_LANGUAGE = "中文"
_ENV_PREFIX = "BILINGUA_"

# Field name -> value kind accepted from YAML and environment sources.
_FIELD_KINDS: dict[str, str] = {
    "api_key": "string",
    "base_url": "string",
    "model": "string",
    "target_language": "string",
    "temperature": "number",
    "enable_thinking": "boolean",
    "display_mode": "string",
    "connect_timeout_seconds": "number",
    "read_timeout_seconds": "number",
    "max_retries": "non_negative_int",
    "store_dir": "path",
    "chapters_dir": "path",
    "reuse_cached": "boolean",
    "persist_progress": "boolean",
    "scan_char_threshold": "positive_int",
    "scan_every_deltas": "positive_int",
    "min_commit_chars": "positive_int",
}


def env_key_for(field_name: str) -> str:
    """Return the environment variable name for a config field."""

    return f"{_ENV_PREFIX}{field_name.upper()}"


@dataclass(frozen=True, slots=True)
class RuntimeConfigSources:
    """Source mappings used for deterministic runtime value precedence.

    Attributes:
        cli: Values explicitly provided by CLI arguments.
        secure: Values loaded from secure local credential storage.
        env: Values loaded from environment variables.
    """

    cli: Mapping[str, str] = field(default_factory=dict)
    secure: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TranslatorRuntimeConfig:
    """Resolved model, language, and credential values for one session.

    Attributes:
        model: Chat model identifier.
        target_language: Translation target language.
        api_key: Optional provider API key (resolved but never logged or stored).
    """

    model: str
    target_language: str
    api_key: str | None = None

    def as_metadata(self) -> dict[str, str]:
        """Return non-secret runtime metadata safe to print or log."""

        return {
            "model": self.model,
            "target_language": self.target_language,
            "api_key_configured": "true" if self.api_key else "false",
        }


@dataclass(slots=True)
class BilinguaConfig:
    """Runtime configuration for translation sessions.

    Attributes:
        api_key: Optional API key for provider calls.
        base_url: OpenAI-compatible API base URL.
        model: Chat model identifier.
        target_language: Language the model translates into.
        temperature: Sampling temperature for translation requests.
        enable_thinking: Whether the provider may run its reasoning mode.
        display_mode: Default rendering of stored sentence pairs.
        connect_timeout_seconds: HTTP connect timeout.
        read_timeout_seconds: HTTP read timeout between stream chunks.
        max_retries: Retries for opening a stream on transient failures.
        store_dir: Directory holding translation records.
        chapters_dir: Directory holding chapter text files.
        reuse_cached: Reuse stored completed translations of identical text.
        persist_progress: Checkpoint the committed prefix while streaming.
        scan_char_threshold: Reconciler scan gate, characters since last scan.
        scan_every_deltas: Reconciler scan gate, forced scan interval in deltas.
        min_commit_chars: Minimum sentence length committed while streaming.
        runtime_sources: Optional runtime source overrides injected by CLI.
    """

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    model: str = _DEFAULT_MODEL
    target_language: str = _DEFAULT_TARGET_LANGUAGE
    temperature: float = 0.3
    enable_thinking: bool = False
    display_mode: str = DisplayMode.BILINGUAL.value
    connect_timeout_seconds: float = 30.0
    read_timeout_seconds: float = 60.0
    max_retries: int = 2
    store_dir: Path = Path(".bilingua") / "translations"
    chapters_dir: Path = Path("chapters")
    reuse_cached: bool = True
    persist_progress: bool = False
    scan_char_threshold: int = 100
    scan_every_deltas: int = 20
    min_commit_chars: int = 2
    runtime_sources: RuntimeConfigSources = field(default_factory=RuntimeConfigSources)

    def validate(self) -> None:
        """Validate configuration values before a session starts."""

        self._require_non_empty(self.model, "model")
        self._require_non_empty(self.target_language, "target_language")
        self._require_non_empty(self.base_url, "base_url")
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError("`base_url` must start with `http://` or `https://`.")
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError("`temperature` must be between 0.0 and 2.0.")
        if self.display_mode not in {mode.value for mode in DisplayMode}:
            supported = ", ".join(mode.value for mode in DisplayMode)
            raise ValueError(
                f"Unsupported `display_mode` value `{self.display_mode}`; supported: {supported}."
            )
        if self.connect_timeout_seconds <= 0.0:
            raise ValueError("`connect_timeout_seconds` must be greater than zero.")
        if self.read_timeout_seconds <= 0.0:
            raise ValueError("`read_timeout_seconds` must be greater than zero.")
        if self.max_retries < 0:
            raise ValueError("`max_retries` must be zero or greater.")
        self.reconciler_settings().validate()

    def reconciler_settings(self) -> ReconcilerSettings:
        """Return reconciler thresholds carried by this config."""

        return ReconcilerSettings(
            scan_char_threshold=self.scan_char_threshold,
            scan_every_deltas=self.scan_every_deltas,
            min_commit_chars=self.min_commit_chars,
        )

    def session_settings(
        self,
        runtime: TranslatorRuntimeConfig | None = None,
        *,
        reuse_cached: bool | None = None,
        persist_progress: bool | None = None,
    ) -> SessionSettings:
        """Return session settings, letting CLI flags override cache/progress options."""

        resolved = runtime if runtime is not None else self.resolved_runtime()
        return SessionSettings(
            target_language=resolved.target_language,
            reuse_cached=self.reuse_cached if reuse_cached is None else reuse_cached,
            persist_progress=(
                self.persist_progress if persist_progress is None else persist_progress
            ),
            reconciler=self.reconciler_settings(),
        )

    def resolved_runtime(
        self, sources: RuntimeConfigSources | None = None
    ) -> TranslatorRuntimeConfig:
        """Resolve model, language, and API key with deterministic source precedence.

        Precedence for each key is:
        `cli` > `secure` > `env` > config field value.
        """

        resolved_sources = sources if sources is not None else self.runtime_sources

        model = self._resolve_runtime_value(
            key="model",
            default_value=self.model,
            sources=resolved_sources,
        )
        target_language = self._resolve_runtime_value(
            key="target_language",
            default_value=self.target_language,
            sources=resolved_sources,
        )
        api_key = self._resolve_optional_runtime_value(
            key="api_key",
            default_value=self.api_key,
            sources=resolved_sources,
        )
        return TranslatorRuntimeConfig(
            model=model,
            target_language=target_language,
            api_key=api_key,
        )

    def _resolve_runtime_value(
        self,
        key: str,
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> str:
        """Resolve a required runtime value from sources in precedence order."""

        value = self._resolve_optional_runtime_value(key, default_value, sources)
        if value is None:
            raise ValueError(
                f"`{key}` could not be resolved from CLI, secure storage, env, or defaults."
            )
        return value

    def _resolve_optional_runtime_value(
        self,
        key: str,
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> str | None:
        """Resolve an optional runtime value from sources in precedence order."""

        cli_value = self._normalized_lookup(sources.cli, key)
        if cli_value is not None:
            return cli_value

        secure_value = self._normalized_lookup(sources.secure, key)
        if secure_value is not None:
            return secure_value

        env_value = self._normalized_lookup(sources.env, env_key_for(key))
        if env_value is not None:
            return env_value

        return normalize_optional_string(default_value)

    @staticmethod
    def _normalized_lookup(mapping: Mapping[str, str], key: str) -> str | None:
        """Return a stripped mapping value for a key or `None` when missing/blank."""

        if key not in mapping:
            return None
        return normalize_optional_string(mapping.get(key))

    @staticmethod
    def _require_non_empty(value: str, field_name: str) -> None:
        """Validate that string fields are not empty."""

        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"`{field_name}` must be a non-empty string.")


class ConfigLoader:
    """Factory methods for creating `BilinguaConfig` from external sources."""

    _SUPPORTED_YAML_KEYS = frozenset(_FIELD_KINDS)
    _RUNTIME_ENV_KEYS = frozenset(
        env_key_for(key) for key in ("api_key", "model", "target_language")
    )

    @staticmethod
    def from_yaml(path: Path, env: Mapping[str, str] | None = None) -> BilinguaConfig:
        """Create a validated config from a YAML file.

        Runtime env values (API key, model, target language) are still captured
        so they can take precedence over file values during resolution.
        """

        path_text = path.read_text(encoding="utf-8")
        payload = ConfigLoader._parse_yaml_payload(path_text, path)
        ConfigLoader._validate_yaml_keys(payload, f"YAML `{path}`")
        values = {
            key: ConfigLoader._parse_field(key, raw_value, f"YAML `{path}` field `{key}`")
            for key, raw_value in payload.items()
        }
        env_map: Mapping[str, str] = os.environ if env is None else env
        return ConfigLoader._build_config(values, ConfigLoader._runtime_env(env_map))

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> BilinguaConfig:
        """Create a validated config from `BILINGUA_*` environment variables."""

        env_map: Mapping[str, str] = os.environ if env is None else env
        values: dict[str, Any] = {}
        for key in _FIELD_KINDS:
            env_key = env_key_for(key)
            if env_key not in env_map:
                continue
            values[key] = ConfigLoader._parse_field(
                key,
                env_map[env_key],
                f"Environment variable `{env_key}`",
            )
        return ConfigLoader._build_config(values, ConfigLoader._runtime_env(env_map))

    @staticmethod
    def _build_config(values: Mapping[str, Any], runtime_env: dict[str, str]) -> BilinguaConfig:
        """Build a validated config from parsed values, skipping blanks."""

        kwargs = {key: value for key, value in values.items() if value is not None}
        config = BilinguaConfig(
            runtime_sources=RuntimeConfigSources(env=runtime_env),
            **kwargs,
        )
        config.validate()
        return config

    @staticmethod
    def _runtime_env(env: Mapping[str, str]) -> dict[str, str]:
        return {
            key: value
            for key, value in env.items()
            if key in ConfigLoader._RUNTIME_ENV_KEYS
            and normalize_optional_string(value) is not None
        }

    @staticmethod
    def _parse_yaml_payload(raw_text: str, path: Path) -> Mapping[str, Any]:
        """Parse YAML text and enforce a mapping root payload."""

        try:
            payload = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML config `{path}` could not be parsed: {exc}") from exc

        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return payload

    @staticmethod
    def _validate_yaml_keys(payload: Mapping[str, Any], source_label: str) -> None:
        """Reject keys that are not configuration fields."""

        unknown = sorted(str(key) for key in set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            key_list = ", ".join(unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

    @staticmethod
    def _parse_field(key: str, raw_value: Any, label: str) -> Any:
        """Parse one raw value by field kind; blank strings and paths yield `None`."""

        kind = _FIELD_KINDS[key]
        try:
            if kind in {"string", "path"}:
                value = normalize_optional_string(raw_value)
                if value is None or kind == "string":
                    return value
                return Path(value).expanduser()
            if kind == "boolean":
                return parse_required_boolean(raw_value, key)
            if kind == "number":
                return parse_non_negative_number(raw_value, key)
            return parse_positive_int(raw_value, key, allow_zero=kind == "non_negative_int")
        except ValueError as exc:
            raise ValueError(f"{label} is invalid: {exc}") from exc

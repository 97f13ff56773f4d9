"""OpenAI-compatible HTTP client for streamed chat completions.

Responsibilities:
- Send chat-completions requests to an OpenAI-compatible REST API (SiliconFlow by default).
- Parse server-sent-event streams into plain text fragments.
- Retry transient failures while opening a request, never after streaming started.
- Raise actionable provider exceptions for session-level error mapping.
"""

from __future__ import annotations

import json
import re
import socket
import time
from typing import Any, Iterator

from loguru import logger
import requests

from ..errors import TransportError
from .rate_limiter import RateLimiter


DEFAULT_BASE_URL = "https://api.siliconflow.cn/v1"


class OpenAIProviderError(TransportError):
    """Raised when a provider request fails or returns malformed output."""


class _OpenAIBaseClient:
    """Shared HTTP settings, retry policy, and error mapping."""

    _MAX_PROVIDER_MESSAGE_CHARS = 180
    _RETRYABLE_FAILURE_KINDS = frozenset({"timeout", "transport", "rate_limited", "server_error"})

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = DEFAULT_BASE_URL,
        connect_timeout_seconds: float = 30.0,
        read_timeout_seconds: float = 60.0,
        max_retries: int = 2,
        retry_backoff_base_seconds: float = 0.5,
        retry_backoff_max_seconds: float = 8.0,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize HTTP client settings."""

        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.base_url = base_url.rstrip("/")
        self.connect_timeout_seconds = connect_timeout_seconds
        self.read_timeout_seconds = read_timeout_seconds
        self.max_retries = max(0, max_retries)
        self.retry_backoff_base_seconds = retry_backoff_base_seconds
        self.retry_backoff_max_seconds = retry_backoff_max_seconds
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter()
        self.retry_attempt_count = 0

    def _require_api_key(self) -> None:
        """Require API key presence before issuing requests."""

        if not self.api_key:
            raise OpenAIProviderError(
                "Missing API key. Set `BILINGUA_API_KEY`, use `--api-key`, or store one "
                "with `bilingua credentials --set-api-key`.",
                failure_kind="invalid_api_key",
            )

    def _post_with_retries(
        self,
        *,
        endpoint_path: str,
        payload: dict[str, Any],
        rate_limit_key: str,
        stream: bool = False,
    ) -> requests.Response:
        """POST a JSON payload, retrying transient failures with exponential backoff."""

        attempt = 0
        while True:
            self.rate_limiter.acquire(rate_limit_key)
            try:
                return self._execute_json_post(
                    endpoint_path=endpoint_path,
                    payload=payload,
                    stream=stream,
                )
            except OpenAIProviderError as exc:
                if attempt >= self.max_retries or exc.failure_kind not in self._RETRYABLE_FAILURE_KINDS:
                    raise
                delay = min(
                    self.retry_backoff_max_seconds,
                    self.retry_backoff_base_seconds * (2**attempt),
                )
                logger.debug(
                    "retrying {} after {} failure in {:.2f}s (attempt {}/{})",
                    endpoint_path,
                    exc.failure_kind,
                    delay,
                    attempt + 1,
                    self.max_retries,
                )
                time.sleep(delay)
                attempt += 1
                self.retry_attempt_count += 1

    def _execute_json_post(
        self,
        *,
        endpoint_path: str,
        payload: dict[str, Any],
        stream: bool,
    ) -> requests.Response:
        """Execute one JSON POST request and map failures consistently."""

        endpoint = f"{self.base_url}{endpoint_path}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if stream:
            headers["Accept"] = "text/event-stream"
        try:
            response = requests.post(
                endpoint,
                headers=headers,
                json=payload,
                timeout=(self.connect_timeout_seconds, self.read_timeout_seconds),
                stream=stream,
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise self._http_error_to_provider_error(exc) from exc
        except requests.RequestException as exc:
            raise self._transport_error(exc) from exc
        except TimeoutError as exc:
            raise OpenAIProviderError(
                "Provider request timed out.",
                failure_kind="timeout",
            ) from exc
        return response

    @classmethod
    def _transport_error(cls, exc: BaseException) -> OpenAIProviderError:
        """Map a network-layer exception into a provider error."""

        failure_kind = cls._classify_transport_failure(exc)
        if failure_kind == "timeout":
            detail = "Provider request timed out."
        else:
            detail = f"Provider transport error: {cls._short_message(str(exc))}"
        return OpenAIProviderError(detail, failure_kind=failure_kind)

    @staticmethod
    def _decode_error_body(exc: requests.HTTPError) -> str:
        """Decode an HTTP error body into a best-effort UTF-8 payload string."""

        response = exc.response
        if response is None:
            return ""
        try:
            return bytes(response.content).decode("utf-8", errors="replace").strip()
        except (requests.RequestException, TypeError, ValueError):
            return ""

    @classmethod
    def _redact_sensitive_tokens(cls, text: str) -> str:
        """Redact API-key-like tokens from provider error content."""

        redacted = re.sub(r"\bsk-[A-Za-z0-9_-]{8,}\b", "[redacted-key]", text)
        redacted = re.sub(
            r"(?i)bearer\s+[A-Za-z0-9._-]{12,}",
            "Bearer [redacted-token]",
            redacted,
        )
        return redacted

    @classmethod
    def _short_message(cls, text: str) -> str:
        """Normalize and cap user-facing provider message length."""

        compact = " ".join(cls._redact_sensitive_tokens(text).split())
        if len(compact) <= cls._MAX_PROVIDER_MESSAGE_CHARS:
            return compact
        return f"{compact[: cls._MAX_PROVIDER_MESSAGE_CHARS - 1]}..."

    @classmethod
    def _extract_provider_message(cls, body: str) -> tuple[str, str | None]:
        """Extract a concise provider-facing message and optional provider error code."""

        if not body:
            return "", None

        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return cls._short_message(body), None

        provider_code: str | None = None
        message: str | None = None
        if isinstance(payload, dict):
            error_payload = payload.get("error")
            if isinstance(error_payload, dict):
                code_value = error_payload.get("code")
                if isinstance(code_value, (str, int)) and str(code_value).strip():
                    provider_code = str(code_value).strip()
                message_value = error_payload.get("message")
                if isinstance(message_value, str) and message_value.strip():
                    message = message_value.strip()
            elif isinstance(payload.get("message"), str):
                message = payload["message"].strip()

        if message is None:
            message = body

        return cls._short_message(message), provider_code

    @staticmethod
    def _classify_http_failure(
        status_code: int,
        provider_message: str,
        provider_code: str | None,
    ) -> str:
        """Classify HTTP errors into deterministic diagnostic kinds."""

        message_lower = provider_message.lower()
        normalized_code = provider_code.lower() if provider_code is not None else ""

        if status_code == 401 or "api key" in message_lower:
            return "invalid_api_key"
        if normalized_code == "insufficient_quota" or (
            status_code in {402, 429} and ("quota" in message_lower or "balance" in message_lower)
        ):
            return "insufficient_quota"
        if normalized_code == "model_not_found" or (
            "model" in message_lower
            and any(phrase in message_lower for phrase in ("not found", "does not exist", "invalid"))
        ):
            return "invalid_model"
        if status_code in {408, 504} or "timeout" in message_lower or "timed out" in message_lower:
            return "timeout"
        if status_code == 429:
            return "rate_limited"
        if status_code >= 500:
            return "server_error"
        return "http_error"

    @staticmethod
    def _classify_transport_failure(reason: object) -> str:
        """Classify network-layer failures into deterministic diagnostic kinds."""

        if isinstance(reason, (TimeoutError, socket.timeout, requests.Timeout)):
            return "timeout"
        return "transport"

    @classmethod
    def _http_error_to_provider_error(cls, exc: requests.HTTPError) -> OpenAIProviderError:
        """Convert HTTP errors into normalized provider exceptions with metadata."""

        status_code = exc.response.status_code if exc.response is not None else 0
        body = cls._decode_error_body(exc)
        provider_message, provider_code = cls._extract_provider_message(body)
        failure_kind = cls._classify_http_failure(status_code, provider_message, provider_code)

        headline = {
            "invalid_api_key": "Provider authentication failed",
            "insufficient_quota": "Provider quota is insufficient for this request",
            "invalid_model": "Provider rejected the selected model",
            "timeout": "Provider request timed out",
            "rate_limited": "Provider rate limit exceeded",
        }.get(failure_kind, "Provider request failed")

        if provider_message:
            detail = f"{headline} (HTTP {status_code}): {provider_message}"
        else:
            detail = f"{headline} (HTTP {status_code})."

        return OpenAIProviderError(
            detail,
            failure_kind=failure_kind,
            status_code=status_code,
            provider_code=provider_code,
        )


class OpenAIChatClient(_OpenAIBaseClient):
    """Minimal requests-based chat-completions client with SSE streaming."""

    _SSE_DATA_PREFIX = "data:"
    _SSE_DONE_MARKER = "[DONE]"

    def chat_completion_text(
        self,
        *,
        model: str,
        system_prompt: str | None,
        user_prompt: str,
        temperature: float = 0.0,
        max_tokens: int | None = None,
        enable_thinking: bool | None = None,
    ) -> str:
        """Return the first assistant text response from a non-streaming request."""

        self._require_api_key()
        payload = self._build_payload(
            model=model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            enable_thinking=enable_thinking,
            stream=False,
        )
        response = self._post_with_retries(
            endpoint_path="/chat/completions",
            payload=payload,
            rate_limit_key=f"chat:{model}",
        )
        return self._extract_message_text(bytes(response.content).decode("utf-8"))

    def stream_chat_completion(
        self,
        *,
        model: str,
        system_prompt: str | None,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int | None = None,
        enable_thinking: bool | None = None,
    ) -> Iterator[str]:
        """Yield assistant text fragments from a streamed chat-completions request.

        The request is opened (with retries) on first iteration. Once the first
        fragment has been yielded, any failure is raised as `OpenAIProviderError`
        without retrying, since fragments cannot be replayed. A stream that ends
        without the `[DONE]` marker is treated as a normal end-of-stream.
        """

        self._require_api_key()
        payload = self._build_payload(
            model=model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            enable_thinking=enable_thinking,
            stream=True,
        )
        response = self._post_with_retries(
            endpoint_path="/chat/completions",
            payload=payload,
            rate_limit_key=f"chat:{model}",
            stream=True,
        )
        try:
            for raw_line in response.iter_lines():
                if not raw_line:
                    continue
                line = (
                    raw_line.decode("utf-8", errors="replace")
                    if isinstance(raw_line, bytes)
                    else raw_line
                ).strip()
                if not line.startswith(self._SSE_DATA_PREFIX):
                    continue
                data = line[len(self._SSE_DATA_PREFIX):].strip()
                if data == self._SSE_DONE_MARKER:
                    return
                fragment = self._extract_stream_fragment(data)
                if fragment:
                    yield fragment
        except requests.RequestException as exc:
            raise self._transport_error(exc) from exc
        finally:
            response.close()

    @staticmethod
    def _build_payload(
        *,
        model: str,
        system_prompt: str | None,
        user_prompt: str,
        temperature: float,
        max_tokens: int | None,
        enable_thinking: bool | None,
        stream: bool,
    ) -> dict[str, Any]:
        """Build a chat-completions request body."""

        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": stream,
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if enable_thinking is not None:
            payload["enable_thinking"] = enable_thinking
        return payload

    @classmethod
    def _extract_stream_fragment(cls, data: str) -> str | None:
        """Extract `choices[0].delta.content` from one SSE JSON chunk.

        Malformed chunks are skipped; an `error` object aborts the stream.
        """

        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("skipping malformed stream chunk ({} chars)", len(data))
            return None
        if not isinstance(payload, dict):
            return None

        error_payload = payload.get("error")
        if error_payload:
            message, provider_code = cls._extract_provider_message(json.dumps(payload))
            raise OpenAIProviderError(
                f"Provider stream reported an error: {message}",
                failure_kind="stream_error",
                provider_code=provider_code,
            )

        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return None
        first_choice = choices[0]
        finish_reason = first_choice.get("finish_reason")
        if finish_reason == "length":
            logger.debug("provider stream stopped at the token limit")
        delta = first_choice.get("delta")
        if not isinstance(delta, dict):
            return None
        return cls._message_content_to_text(delta.get("content"))

    @classmethod
    def _extract_message_text(cls, raw_payload: str) -> str:
        """Extract first assistant message text from a chat-completions JSON payload."""

        try:
            payload = json.loads(raw_payload)
        except json.JSONDecodeError as exc:
            raise OpenAIProviderError("Provider returned invalid JSON payload.") from exc

        choices = payload.get("choices") if isinstance(payload, dict) else None
        if not isinstance(choices, list) or not choices:
            raise OpenAIProviderError("Provider response missing non-empty `choices` list.")

        first_choice = choices[0]
        if not isinstance(first_choice, dict):
            raise OpenAIProviderError("Provider response `choices[0]` is malformed.")

        message = first_choice.get("message")
        if not isinstance(message, dict):
            raise OpenAIProviderError("Provider response missing `choices[0].message` object.")

        normalized = cls._message_content_to_text(message.get("content")).strip()
        if not normalized:
            raise OpenAIProviderError("Provider response message content is empty.")
        return normalized

    @staticmethod
    def _message_content_to_text(content: Any) -> str:
        """Convert message content variants into a plain text string."""

        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts: list[str] = []
            for item in content:
                if not isinstance(item, dict):
                    continue
                if item.get("type") == "text" and isinstance(item.get("text"), str):
                    parts.append(item["text"])
            return "".join(parts)
        return ""

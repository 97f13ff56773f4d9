"""Unit tests for the OpenAI-compatible streaming client and transport."""

from __future__ import annotations

import json

import pytest
import requests

from bilingua.llm import openai_client as openai_http
from bilingua.llm.openai_client import OpenAIChatClient, OpenAIProviderError
from bilingua.llm.rate_limiter import RateLimiter
from bilingua.llm.translator import OpenAIStreamTranslator
from bilingua.models.datatypes import TextDelta


class _MockStreamResponse:
    """Minimal requests response mock exposing SSE lines."""

    def __init__(
        self,
        *,
        lines: list[bytes] | None = None,
        status_code: int = 200,
        payload: bytes = b"",
        fail_after: int | None = None,
    ) -> None:
        """Initialize response lines, status, body, and optional mid-stream failure."""

        self._lines = lines or []
        self.status_code = status_code
        self.content = payload
        self._fail_after = fail_after
        self.closed = False

    def raise_for_status(self) -> None:
        """Raise HTTPError when the response status represents a failure."""

        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)

    def iter_lines(self):
        """Yield raw SSE lines, optionally breaking the connection midway."""

        for index, line in enumerate(self._lines):
            if self._fail_after is not None and index == self._fail_after:
                raise requests.ConnectionError("connection reset by peer")
            yield line

    def close(self) -> None:
        self.closed = True


class _RecordingRateLimiter:
    """Rate limiter test double that records acquire keys."""

    def __init__(self) -> None:
        self.keys: list[str] = []

    def acquire(self, key: str) -> None:
        self.keys.append(key)


def _sse(content: str) -> bytes:
    return f"data: {json.dumps({'choices': [{'delta': {'content': content}}]})}".encode("utf-8")


def _client(**kwargs: object) -> OpenAIChatClient:
    return OpenAIChatClient(
        api_key="sk-test-key-123456",
        rate_limiter=RateLimiter(min_interval_seconds=0.0),
        **kwargs,
    )


def test_stream_yields_content_fragments_until_done(monkeypatch: pytest.MonkeyPatch) -> None:
    """SSE data lines are decoded in order; comments, keep-alives, and bad JSON are skipped."""

    response = _MockStreamResponse(
        lines=[
            b": keep-alive",
            _sse("1. Fo"),
            b"",
            b"data: {not-json",
            _sse("o\n2. Bar"),
            b'data: {"choices": [{"delta": {"role": "assistant"}}]}',
            b"data: [DONE]",
            _sse("ignored"),
        ]
    )
    captured: dict[str, object] = {}

    def _mock_post(url: str, **kwargs: object) -> _MockStreamResponse:
        captured["url"] = url
        captured.update(kwargs)
        return response

    monkeypatch.setattr("bilingua.llm.openai_client.requests.post", _mock_post)

    fragments = list(
        _client().stream_chat_completion(
            model="Qwen/Qwen3-8B",
            system_prompt="system",
            user_prompt="1. Foo",
            temperature=0.3,
            max_tokens=42,
            enable_thinking=False,
        )
    )

    assert fragments == ["1. Fo", "o\n2. Bar"]
    assert response.closed is True
    assert captured["url"] == "https://api.siliconflow.cn/v1/chat/completions"
    assert captured["stream"] is True
    payload = captured["json"]
    assert payload["stream"] is True
    assert payload["max_tokens"] == 42
    assert payload["enable_thinking"] is False
    assert payload["messages"][0] == {"role": "system", "content": "system"}
    assert captured["headers"]["Accept"] == "text/event-stream"


def test_stream_open_retries_transient_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    """Server errors while opening the stream are retried with backoff."""

    responses = [
        _MockStreamResponse(status_code=503, payload=b'{"error": {"message": "busy"}}'),
        _MockStreamResponse(lines=[_sse("1. Hi"), b"data: [DONE]"]),
    ]
    sleeps: list[float] = []
    limiter = _RecordingRateLimiter()

    monkeypatch.setattr(
        "bilingua.llm.openai_client.requests.post",
        lambda _url, **_kwargs: responses.pop(0),
    )
    monkeypatch.setattr("bilingua.llm.openai_client.time.sleep", sleeps.append)

    client = OpenAIChatClient(api_key="key", rate_limiter=limiter, max_retries=2)
    fragments = list(
        client.stream_chat_completion(model="m", system_prompt=None, user_prompt="x")
    )

    assert fragments == ["1. Hi"]
    assert sleeps == [0.5]
    assert client.retry_attempt_count == 1
    assert limiter.keys == ["chat:m", "chat:m"]


def test_authentication_failure_is_not_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    """A 401 maps to `invalid_api_key` immediately and redacts keys in the message."""

    calls: list[str] = []

    def _mock_post(url: str, **_kwargs: object) -> _MockStreamResponse:
        calls.append(url)
        return _MockStreamResponse(
            status_code=401,
            payload=b'{"error": {"message": "Invalid key sk-abcdefghijklmnop", "code": "invalid"}}',
        )

    monkeypatch.setattr("bilingua.llm.openai_client.requests.post", _mock_post)
    monkeypatch.setattr("bilingua.llm.openai_client.time.sleep", lambda _seconds: None)

    with pytest.raises(OpenAIProviderError) as exc_info:
        list(_client().stream_chat_completion(model="m", system_prompt=None, user_prompt="x"))

    error = exc_info.value
    assert error.failure_kind == "invalid_api_key"
    assert error.status_code == 401
    assert "sk-abcdefghijklmnop" not in str(error)
    assert "[redacted-key]" in str(error)
    assert len(calls) == 1


def test_mid_stream_disconnect_raises_without_retry(monkeypatch: pytest.MonkeyPatch) -> None:
    """Failures after fragments were yielded surface as transport errors."""

    response = _MockStreamResponse(lines=[_sse("1. Foo\n"), _sse("2. B")], fail_after=1)
    calls: list[str] = []

    def _mock_post(url: str, **_kwargs: object) -> _MockStreamResponse:
        calls.append(url)
        return response

    monkeypatch.setattr("bilingua.llm.openai_client.requests.post", _mock_post)

    fragments: list[str] = []
    with pytest.raises(OpenAIProviderError, match="transport error") as exc_info:
        for fragment in _client().stream_chat_completion(
            model="m", system_prompt=None, user_prompt="x"
        ):
            fragments.append(fragment)

    assert fragments == ["1. Foo\n"]
    assert exc_info.value.failure_kind == "transport"
    assert len(calls) == 1
    assert response.closed is True


def test_stream_error_object_aborts(monkeypatch: pytest.MonkeyPatch) -> None:
    """An in-band error chunk raises a `stream_error` provider error."""

    response = _MockStreamResponse(
        lines=[b'data: {"error": {"message": "overloaded", "code": "503"}}']
    )
    monkeypatch.setattr(
        "bilingua.llm.openai_client.requests.post",
        lambda _url, **_kwargs: response,
    )

    with pytest.raises(OpenAIProviderError, match="overloaded") as exc_info:
        list(_client().stream_chat_completion(model="m", system_prompt=None, user_prompt="x"))

    assert exc_info.value.failure_kind == "stream_error"


def test_missing_api_key_fails_before_any_request(monkeypatch: pytest.MonkeyPatch) -> None:
    """No request is sent without credentials."""

    def _unexpected_post(_url: str, **_kwargs: object) -> _MockStreamResponse:
        raise AssertionError("requests.post must not be called")

    monkeypatch.setattr("bilingua.llm.openai_client.requests.post", _unexpected_post)

    client = OpenAIChatClient(api_key="   ")
    with pytest.raises(OpenAIProviderError, match="BILINGUA_API_KEY") as exc_info:
        list(client.stream_chat_completion(model="m", system_prompt=None, user_prompt="x"))

    assert exc_info.value.failure_kind == "invalid_api_key"


def test_connection_timeout_maps_to_timeout_kind(monkeypatch: pytest.MonkeyPatch) -> None:
    """Timeouts are classified and retried up to the retry budget."""

    def _mock_post(_url: str, **_kwargs: object) -> _MockStreamResponse:
        raise openai_http.requests.Timeout("read timed out")

    sleeps: list[float] = []
    monkeypatch.setattr("bilingua.llm.openai_client.requests.post", _mock_post)
    monkeypatch.setattr("bilingua.llm.openai_client.time.sleep", sleeps.append)

    with pytest.raises(OpenAIProviderError, match="timed out") as exc_info:
        list(_client(max_retries=2).stream_chat_completion(model="m", system_prompt=None, user_prompt="x"))

    assert exc_info.value.failure_kind == "timeout"
    assert sleeps == [0.5, 1.0]


def test_non_streaming_completion_returns_message_text(monkeypatch: pytest.MonkeyPatch) -> None:
    """The connection check path parses a regular chat-completions body."""

    def _mock_post(_url: str, **kwargs: object) -> _MockStreamResponse:
        assert kwargs["stream"] is False
        return _MockStreamResponse(
            payload=json.dumps({"choices": [{"message": {"content": " ok "}}]}).encode("utf-8")
        )

    monkeypatch.setattr("bilingua.llm.openai_client.requests.post", _mock_post)

    translator = OpenAIStreamTranslator(
        api_key="key",
        rate_limiter=RateLimiter(min_interval_seconds=0.0),
    )

    assert translator.check_connection() == "ok"


def test_stream_translator_wraps_fragments_as_deltas(monkeypatch: pytest.MonkeyPatch) -> None:
    """The transport yields `TextDelta` objects and forwards model settings."""

    captured: dict[str, object] = {}

    def _mock_post(_url: str, **kwargs: object) -> _MockStreamResponse:
        captured.update(kwargs)
        return _MockStreamResponse(lines=[_sse("1. Hallo"), _sse(" Welt\n"), b"data: [DONE]"])

    monkeypatch.setattr("bilingua.llm.openai_client.requests.post", _mock_post)

    translator = OpenAIStreamTranslator(
        model="Qwen/Qwen3-8B",
        api_key="key",
        rate_limiter=RateLimiter(min_interval_seconds=0.0),
    )
    deltas = list(translator.stream("prompt", system_prompt="system", max_tokens=90))

    assert deltas == [TextDelta("1. Hallo"), TextDelta(" Welt\n")]
    payload = captured["json"]
    assert payload["model"] == "Qwen/Qwen3-8B"
    assert payload["temperature"] == 0.3
    assert payload["enable_thinking"] is False
    assert payload["max_tokens"] == 90


def test_rate_limiter_spaces_requests_per_key() -> None:
    """Requests for the same key wait for the minimum interval; other keys do not."""

    now = [10.0]
    sleeps: list[float] = []

    def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
        now[0] += seconds

    limiter = RateLimiter(min_interval_seconds=0.5, clock=lambda: now[0], sleeper=_sleep)

    limiter.acquire("chat:a")
    limiter.acquire("chat:a")
    limiter.acquire("chat:b")

    assert sleeps == [0.5]

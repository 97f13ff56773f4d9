"""Streaming translation transports.

Responsibilities:
- Define the protocol the translation session uses to reach a generation service.
- Provide the OpenAI-compatible streaming implementation with model metadata.
"""

from __future__ import annotations

from typing import Iterator, Protocol

from ..models.datatypes import TextDelta
from .openai_client import DEFAULT_BASE_URL, OpenAIChatClient
from .prompts import PromptLibrary
from .rate_limiter import RateLimiter


class StreamTransport(Protocol):
    """Protocol for streamed generation transports.

    Iteration yields deltas in arrival order; exhaustion is the end-of-stream
    sentinel, and failures surface as `TransportError`.
    """

    def stream(
        self,
        prompt: str,
        *,
        system_prompt: str,
        max_tokens: int | None = None,
    ) -> Iterator[TextDelta]:
        """Open a stream for `prompt` and yield text deltas."""


class OpenAIStreamTranslator:
    """OpenAI-compatible streaming transport for numbered translation prompts."""

    def __init__(
        self,
        model: str = "Qwen/Qwen3-8B",
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        temperature: float = 0.3,
        enable_thinking: bool = False,
        connect_timeout_seconds: float = 30.0,
        read_timeout_seconds: float = 60.0,
        max_retries: int = 2,
        rate_limiter: RateLimiter | None = None,
        client: OpenAIChatClient | None = None,
    ) -> None:
        """Initialize model settings and the HTTP client dependency."""

        self.model = model
        self.temperature = temperature
        self.enable_thinking = enable_thinking
        self.client = client or OpenAIChatClient(
            api_key=api_key,
            base_url=base_url,
            connect_timeout_seconds=connect_timeout_seconds,
            read_timeout_seconds=read_timeout_seconds,
            max_retries=max_retries,
            rate_limiter=rate_limiter,
        )
        self.prompts = PromptLibrary()

    def stream(
        self,
        prompt: str,
        *,
        system_prompt: str,
        max_tokens: int | None = None,
    ) -> Iterator[TextDelta]:
        """Yield `TextDelta` fragments of the streamed model response."""

        for fragment in self.client.stream_chat_completion(
            model=self.model,
            system_prompt=system_prompt,
            user_prompt=prompt,
            temperature=self.temperature,
            max_tokens=max_tokens,
            enable_thinking=self.enable_thinking,
        ):
            yield TextDelta(content=fragment)

    def check_connection(self) -> str:
        """Run a tiny non-streaming request and return the model reply."""

        return self.client.chat_completion_text(
            model=self.model,
            system_prompt=None,
            user_prompt=self.prompts.connection_check_prompt(),
            max_tokens=10,
            enable_thinking=False,
        )

    @property
    def retry_attempt_count(self) -> int:
        """Return retry attempt count performed by the underlying client."""

        return self.client.retry_attempt_count

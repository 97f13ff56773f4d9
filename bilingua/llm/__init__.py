"""LLM-facing abstractions for numbered streaming translation.

This package defines the numbered-line codec, prompt library, the streaming
transport protocol, and the OpenAI-compatible HTTP client behind it.
"""

from .numbering import NumberingCodec
from .openai_client import OpenAIChatClient, OpenAIProviderError
from .prompts import PromptLibrary
from .rate_limiter import RateLimiter
from .translator import OpenAIStreamTranslator, StreamTransport

__all__ = [
    "NumberingCodec",
    "OpenAIChatClient",
    "OpenAIProviderError",
    "OpenAIStreamTranslator",
    "PromptLibrary",
    "RateLimiter",
    "StreamTransport",
]

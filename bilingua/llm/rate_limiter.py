"""Request pacing for provider calls.

Responsibilities:
- Provide a single hook to enforce a minimum interval between provider requests.
- Keep pacing independent from the HTTP client and retry policy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from time import monotonic, sleep
from typing import Callable


@dataclass(slots=True)
class RateLimiter:
    """Per-key minimum-interval limiter shared by concurrent sessions."""

    min_interval_seconds: float = 0.05
    clock: Callable[[], float] = monotonic
    sleeper: Callable[[float], None] = sleep
    _next_allowed_at: dict[str, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def acquire(self, key: str) -> None:
        """Block until the key is allowed, then reserve its next slot."""

        if self.min_interval_seconds <= 0.0:
            return
        with self._lock:
            now = self.clock()
            slot = max(now, self._next_allowed_at.get(key, 0.0))
            self._next_allowed_at[key] = slot + self.min_interval_seconds
        wait_seconds = slot - now
        if wait_seconds > 0.0:
            self.sleeper(wait_seconds)

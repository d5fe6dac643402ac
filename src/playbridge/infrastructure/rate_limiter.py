"""Token bucket rate limiter for outbound API calls.

The bucket holds ``max_tokens``; tokens refill at ``refill_rate`` per second
and every request consumes one. On a 429 the limiter drains the bucket and
backs off exponentially (or for the server's Retry-After) before the retry.

USAGE:
    limiter = RateLimiter.for_spotify(requests_per_second=10.0)

    async with limiter:
        response = await client.get(url)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter."""

    max_tokens: int = 10
    refill_rate: float = 2.0  # tokens per second
    max_backoff_seconds: float = 600.0
    initial_backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0


@dataclass
class RateLimiter:
    """Token bucket rate limiter with adaptive backoff.

    One instance per upstream service, shared by every caller of that
    service. The owning client creates it, nothing reads it from a global.
    """

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    name: str = "default"

    _tokens: float = field(default=0.0, init=False)
    _last_refill: float = field(default_factory=time.monotonic, init=False)
    _current_backoff: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self) -> None:
        self._tokens = float(self.config.max_tokens)
        self._current_backoff = self.config.initial_backoff_seconds

    @classmethod
    def for_spotify(cls, requests_per_second: float = 2.0) -> "RateLimiter":
        """Spotify allows short bursts; Retry-After can be minutes long."""
        return cls(
            config=RateLimiterConfig(
                max_tokens=10,
                refill_rate=requests_per_second,
                max_backoff_seconds=600.0,
                initial_backoff_seconds=1.0,
            ),
            name="spotify",
        )

    def _refill_tokens(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(
            self.config.max_tokens, self._tokens + elapsed * self.config.refill_rate
        )
        self._last_refill = now

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""
        async with self._lock:
            self._refill_tokens()
            while self._tokens < 1.0:
                wait_time = (1.0 - self._tokens) / self.config.refill_rate
                logger.debug(
                    "RateLimiter[%s]: no tokens, waiting %.2fs", self.name, wait_time
                )
                # Sleep while holding the lock so waiters queue up in order
                await asyncio.sleep(wait_time)
                self._refill_tokens()
            self._tokens -= 1.0

    async def handle_rate_limit_response(self, retry_after: float | None = None) -> float:
        """Back off after a 429, returns the time actually waited."""
        async with self._lock:
            wait_time = retry_after if retry_after is not None else self._current_backoff
            wait_time = min(wait_time, self.config.max_backoff_seconds)
            logger.warning(
                "RateLimiter[%s]: 429 received, waiting %.1fs before retry",
                self.name,
                wait_time,
            )
            self._current_backoff = min(
                self._current_backoff * self.config.backoff_multiplier,
                self.config.max_backoff_seconds,
            )
            self._tokens = 0.0

        await asyncio.sleep(wait_time)
        return wait_time

    def reset_backoff(self) -> None:
        """Reset backoff after a successful request."""
        self._current_backoff = self.config.initial_backoff_seconds

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        if exc_type is None:
            self.reset_backoff()

    @property
    def available_tokens(self) -> float:
        """Current token count (for debugging and tests)."""
        self._refill_tokens()
        return self._tokens


__all__ = ["RateLimiter", "RateLimiterConfig"]

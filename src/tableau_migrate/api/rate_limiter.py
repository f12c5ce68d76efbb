"""Client-side rate limiting for Tableau REST API calls."""

import asyncio
import time
from typing import Optional

from .exceptions import TableauRateLimitError


class RateLimiter:
    """Token bucket rate limiter for API requests.

    When ``max_wait`` is set, a request that would have to wait longer than
    that for a token is rejected with :class:`TableauRateLimitError` instead,
    which the retry policy treats as retryable.
    """

    def __init__(
        self, requests_per_second: float = 10.0, max_wait: Optional[float] = None
    ):
        """Initialize rate limiter.

        Args:
            requests_per_second: Maximum requests per second allowed
            max_wait: Longest time in seconds a caller may wait for a token
        """
        self.requests_per_second = requests_per_second
        self.max_wait = max_wait
        self.tokens = requests_per_second
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(
            self.requests_per_second,
            self.tokens + elapsed * self.requests_per_second,
        )
        self.last_update = now

    async def acquire(self) -> None:
        """Acquire a token for making a request.

        Blocks until a token is available.

        Raises:
            TableauRateLimitError: If the wait would exceed ``max_wait``
        """
        async with self._lock:
            self._refill()

            if self.tokens >= 1:
                self.tokens -= 1
                return

            sleep_time = (1 - self.tokens) / self.requests_per_second
            if self.max_wait is not None and sleep_time > self.max_wait:
                raise TableauRateLimitError(
                    f'Client rate limit exceeded, next slot in {sleep_time:.2f}s',
                    retry_after=int(sleep_time) + 1,
                )

            await asyncio.sleep(sleep_time)
            self._refill()
            self.tokens = max(self.tokens - 1, 0)

    def time_until_next_request(self) -> float:
        """Get time until next request can be made.

        Returns:
            Seconds until next request is allowed
        """
        elapsed = time.monotonic() - self.last_update
        tokens = min(
            self.requests_per_second, self.tokens + elapsed * self.requests_per_second
        )
        if tokens >= 1:
            return 0.0

        return (1 - tokens) / self.requests_per_second

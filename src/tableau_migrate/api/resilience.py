"""Retry policies wrapped around every REST call."""

import asyncio
import threading
from typing import Awaitable, Callable, FrozenSet, Iterable, List, Optional

from loguru import logger

from ..config.config import ConfigReader, ResilienceConfig
from .exceptions import TableauRateLimitError, TableauTransportError
from .transport import RestRequest, RestResponse, SendFunc

# 408 Request Timeout and every 5xx, the conventional transient HTTP errors.
TRANSIENT_STATUS_CODES: FrozenSet[int] = frozenset([408, *range(500, 600)])

RATE_LIMITED_STATUS_CODE = 429

# Network failures (including timeouts) and rate-limit rejections.
RETRYABLE_ERRORS = (TableauTransportError, TableauRateLimitError)

SleepFunc = Callable[[float], Awaitable[None]]


class RetryPolicy:
    """Wait-and-retry policy over a fixed sequence of intervals.

    Interval ``i`` is waited before retry ``i``; when the intervals run out the
    last response is returned or the last error is raised.
    """

    def __init__(
        self,
        intervals: Iterable[float],
        retry_status_codes: Iterable[int] = TRANSIENT_STATUS_CODES,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.intervals: List[float] = list(intervals)
        self.retry_status_codes: FrozenSet[int] = frozenset(retry_status_codes)
        self._sleep = sleep
        self.logger = logger.bind(component='RetryPolicy')

    def should_retry_response(self, response: RestResponse) -> bool:
        return (
            response.status_code in self.retry_status_codes
            or response.status_code == RATE_LIMITED_STATUS_CODE
        )

    async def execute(self, send: SendFunc, request: RestRequest) -> RestResponse:
        attempt = 0
        while True:
            try:
                response = await send(request)
            except RETRYABLE_ERRORS as e:
                if attempt >= len(self.intervals):
                    raise
                reason = f'{type(e).__name__}: {e}'
            else:
                if attempt >= len(self.intervals) or not self.should_retry_response(
                    response
                ):
                    return response
                reason = f'HTTP {response.status_code}'

            delay = self.intervals[attempt]
            attempt += 1
            self.logger.warning(
                f'{request.method} {request.url} failed ({reason}), '
                f'retry {attempt}/{len(self.intervals)} in {delay}s'
            )
            await self._sleep(delay)


class RetryPolicyBuilder:
    """Derives a retry policy from resilience settings."""

    def __init__(self, sleep: SleepFunc = asyncio.sleep):
        self._sleep = sleep

    def build(self, options: ResilienceConfig) -> Optional[RetryPolicy]:
        """Build a policy, or ``None`` when retries are disabled."""
        if not options.retry_enabled or not options.retry_intervals:
            return None

        status_codes = (
            frozenset(options.retry_override_status_codes)
            if options.retry_override_status_codes
            else TRANSIENT_STATUS_CODES
        )
        return RetryPolicy(options.retry_intervals, status_codes, sleep=self._sleep)


class CachedRetryPolicyBuilder:
    """Reuses the derived policy until the resilience settings change.

    The cache key combines the retry flag, the intervals and the override
    status codes of the live configuration snapshot.
    """

    def __init__(self, builder: RetryPolicyBuilder, config_reader: ConfigReader):
        self._builder = builder
        self._config_reader = config_reader
        self._lock = threading.Lock()
        self._key: Optional[str] = None
        self._policy: Optional[RetryPolicy] = None

    def build(self) -> Optional[RetryPolicy]:
        options = self._config_reader.get().resilience
        key = options.policy_key()

        with self._lock:
            if key != self._key:
                self._policy = self._builder.build(options)
                self._key = key
            return self._policy


class ResilienceHandler:
    """Applies the current retry policy to each request."""

    def __init__(self, inner: SendFunc, policy_builder: CachedRetryPolicyBuilder):
        self._inner = inner
        self.policy_builder = policy_builder

    async def __call__(self, request: RestRequest) -> RestResponse:
        policy = self.policy_builder.build()
        if policy is None:
            return await self._inner(request)
        return await policy.execute(self._inner, request)

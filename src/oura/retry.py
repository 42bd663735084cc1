"""Bounded retry with exponential backoff and jitter for transient failures.

Only rate-limited (429), server-error (5xx) and network failures are
retried.  Unauthorized, not-found, decoding and other HTTP errors surface
on the first occurrence.  ``asyncio.CancelledError`` is never caught, so
cancellation aborts both in-flight requests and backoff sleeps at once.

Delay for retry ``n`` (0-indexed):
    Retry-After present  → min(retry_after, max_delay)
    otherwise            → min(base * 2**n + U(0, 0.5) * base * 2**n, max_delay)
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

from src.oura.client import OuraClient, PageRequest
from src.oura.errors import OuraAPIError
from src.oura.records import Page

logger = logging.getLogger("ringpulse.oura.retry")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry limits.

    Attributes:
        max_attempts: Retries allowed after the first try (so at most
                      ``max_attempts + 1`` requests).  0 disables retry.
        base_delay:   Seconds before the first retry, before jitter.
        max_delay:    Hard cap on any single delay, jitter included.
        jitter_ratio: Upper bound of the random fraction added on top of
                      the exponential delay.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter_ratio: float = 0.5

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be non-negative")
        if self.jitter_ratio < 0:
            raise ValueError(f"jitter_ratio must be >= 0, got {self.jitter_ratio}")

    def delay_for(
        self,
        attempt: int,
        retry_after: float | None = None,
        rng: random.Random | None = None,
    ) -> float:
        """Return the sleep before retry number ``attempt`` (0-indexed)."""
        if retry_after is not None:
            return min(retry_after, self.max_delay)

        exponential = self.base_delay * (2 ** attempt)
        uniform = (rng or random).uniform(0.0, self.jitter_ratio)
        return min(exponential + uniform * exponential, self.max_delay)


DEFAULT_RETRY_POLICY = RetryPolicy()


class RetryingFetcher:
    """Wraps ``OuraClient.get`` with the retry policy.

    Args:
        client: Single-page fetch client.
        policy: Retry limits; defaults to 3 retries, 1s base, 30s cap.
        sleep:  Awaitable sleep, injectable so tests need not wait.
        rng:    Random source for jitter.
    """

    def __init__(
        self,
        client: OuraClient,
        policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._client = client
        self._policy = policy or DEFAULT_RETRY_POLICY
        self._sleep = sleep
        self._rng = rng

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def fetch(self, request: PageRequest, token: str) -> Page:
        """Fetch one page, retrying transient failures.

        Raises:
            OuraAPIError: The first non-retryable error, or the last
                          retryable one once the policy is exhausted.
        """
        attempt = 0
        while True:
            try:
                return await self._client.get(request, token)
            except OuraAPIError as exc:
                if not exc.retryable:
                    raise
                if attempt >= self._policy.max_attempts:
                    logger.warning(
                        "Giving up on %s after %d attempt(s): %s",
                        request.endpoint.value,
                        attempt + 1,
                        exc,
                    )
                    raise

                delay = self._policy.delay_for(attempt, exc.retry_after, self._rng)
                logger.warning(
                    "Retrying %s in %.2fs (retry %d/%d) after %s",
                    request.endpoint.value,
                    delay,
                    attempt + 1,
                    self._policy.max_attempts,
                    exc.kind.value,
                )
                await self._sleep(delay)
                attempt += 1

"""Retry with exponential backoff for model invocations."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, Field

from threadgraph.errors import ModelInvocationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """How often, and how patiently, a failed model call is retried.

    ``max_attempts`` counts the first call, so ``1`` disables retries.
    """

    max_attempts: int = Field(default=1, ge=1)
    base_delay: float = Field(default=0.5, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)
    backoff_factor: float = Field(default=2.0, ge=1.0)
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        delay = min(self.base_delay * (self.backoff_factor ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay = random.uniform(0, delay)
        return delay

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """Await ``func()``, retrying on ModelInvocationError."""
        attempt = 0
        while True:
            try:
                return await func()
            except ModelInvocationError as exc:
                attempt += 1
                if attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "model call failed, retry %d/%d in %.2fs: %s",
                    attempt,
                    self.max_attempts - 1,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)

"""Exponential backoff with jitter around transient provider failures."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, TypeVar

from .config import RetryConfig
from .llm.errors import ProviderError
from .logging import get_logger

T = TypeVar("T")

logger = get_logger("retry")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: Tuple[float, float] = (0.5, 1.5)

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
        )

    def delay_for(self, attempt: int, factor: float) -> float:
        """Delay before retrying after failed ``attempt`` (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)) * factor, self.max_delay)


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, ProviderError) and error.transient


def call_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
    rng: Optional[random.Random] = None,
) -> T:
    """Run ``operation``; retry transient provider errors, re-raise everything else."""
    policy = policy or RetryPolicy()
    generator = rng or random.Random()
    attempt = 1
    while True:
        try:
            return operation()
        except ProviderError as exc:
            if not is_retryable(exc) or attempt >= policy.max_attempts:
                raise
            delay = policy.delay_for(attempt, generator.uniform(*policy.jitter))
            logger.warning(
                "Attempt %d/%d failed (%s); retrying in %.2fs",
                attempt,
                policy.max_attempts,
                exc,
                delay,
            )
            sleep(delay)
            attempt += 1


__all__ = ["RetryPolicy", "call_with_retry", "is_retryable"]

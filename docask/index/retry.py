"""Bounded exponential backoff with full jitter for remote calls."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger("docask.index.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Retry limits, fixed once loaded."""

    max_attempts: int = 5
    base_delay: float = 0.5  # seconds
    max_delay: float = 8.0  # seconds

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be greater than zero")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must not be smaller than base_delay")

    def delay_cap(self, attempt: int) -> float:
        """Upper bound of the wait that follows failed attempt ``attempt``."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))


class RetryExecutor:
    """Runs a callable until it succeeds or the attempt budget is spent.

    Waits between attempts are drawn uniformly from ``[0, cap]`` where the cap
    doubles per attempt and is clamped to ``max_delay``. Sleeping happens on
    the calling thread only. The last exception is re-raised unchanged.
    """

    def __init__(
        self,
        config: RetryConfig,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.config = config
        self._sleep = sleep
        self._jitter = jitter

    def call(
        self,
        operation: Callable[..., T],
        *args: Any,
        description: Optional[str] = None,
        **kwargs: Any,
    ) -> T:
        label = description or getattr(operation, "__name__", "operation")
        attempt = 1
        while True:
            try:
                return operation(*args, **kwargs)
            except Exception as exc:
                if attempt >= self.config.max_attempts:
                    logger.error(
                        "%s failed after %d attempt(s): %s",
                        label,
                        attempt,
                        exc,
                    )
                    raise
                delay = self._jitter(0.0, self.config.delay_cap(attempt))
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                    label,
                    attempt,
                    self.config.max_attempts,
                    exc,
                    delay,
                )
                self._sleep(delay)
                attempt += 1


__all__ = ["RetryConfig", "RetryExecutor"]

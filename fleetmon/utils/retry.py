"""Retry helpers for flaky network operations."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


class RetryStrategy(str, Enum):
    """Retry strategy types."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


@dataclass
class RetryConfig:
    """Configuration for retry operations."""

    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: Optional[float] = None
    strategy: RetryStrategy = RetryStrategy.FIXED
    backoff_multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        if self.strategy == RetryStrategy.EXPONENTIAL:
            delay = self.base_delay * (self.backoff_multiplier ** (attempt - 1))
        elif self.strategy == RetryStrategy.LINEAR:
            delay = self.base_delay * attempt
        else:
            delay = self.base_delay
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


def retry_call(
    func: Callable[..., Any],
    config: RetryConfig,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Call ``func`` until it succeeds or the retries are exhausted.

    ``max_retries`` counts total attempts, so ``max_retries=3`` means one call
    plus two retries. The last exception is re-raised.
    """
    attempts = max(1, config.max_retries)
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as e:
            if attempt >= attempts:
                raise
            delay = config.delay_for(attempt)
            logger.debug(f"Attempt {attempt}/{attempts} failed ({e}); retrying in {delay}s")
            sleep(delay)

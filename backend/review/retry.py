"""
Retry utilities for review API reads.

Only idempotent requests (fetching an approval, listing approvals) go through
here. Decisions and cancellations are never retried automatically: a failed
submission is handed back to the reviewer instead.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 0.5  # seconds
    max_delay: float = 10.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True

    retryable_exceptions: tuple[type[Exception], ...] = (
        httpx.ConnectError,
        httpx.ReadTimeout,
        httpx.RemoteProtocolError,
    )

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt (0-indexed)."""
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            # +/- 25%
            spread = delay * 0.25
            delay += random.uniform(-spread, spread)
        return max(0.05, delay)


DEFAULT_RETRY = RetryConfig()

# Used by tests and callers that want a single attempt
NO_RETRY = RetryConfig(max_attempts=1)


async def retry_async(
    func: Callable[..., Any],
    *args: Any,
    config: RetryConfig | None = None,
    on_retry: Callable[[int, Exception], None] | None = None,
    **kwargs: Any,
) -> Any:
    """
    Execute an async function, retrying on transient transport errors.

    Args:
        func: The async function to call
        *args: Positional arguments to pass to func
        config: Retry configuration (uses defaults if not provided)
        on_retry: Optional callback called before each retry (attempt, exception)
        **kwargs: Keyword arguments to pass to func

    Returns:
        The result of func

    Raises:
        The last exception if all attempts fail; non-retryable exceptions
        immediately.
    """
    config = config or DEFAULT_RETRY

    for attempt in range(config.max_attempts):
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if attempt >= config.max_attempts - 1:
                raise
            delay = config.get_delay(attempt)
            if on_retry:
                on_retry(attempt + 1, e)
            logger.warning(
                f"Retry {attempt + 1}/{config.max_attempts} after {delay:.1f}s: {type(e).__name__}"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("retry_async called with max_attempts < 1")

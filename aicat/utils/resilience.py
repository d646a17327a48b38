"""
Retry-with-backoff for transient httpx failures.

Only used where repeating a request is safe: a connection that was never
established cannot have reached the host.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, Type, TypeVar

logger = logging.getLogger("AICat.Resilience")

T = TypeVar("T")


async def async_retry(
    fn: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    retryable_exceptions: Sequence[Type[BaseException]] = (),
    **kwargs,
) -> T:
    """Await ``fn`` up to ``max_attempts`` times, doubling the delay each retry.

    Raises:
        The last exception if all attempts are exhausted.
    """
    retryable = tuple(retryable_exceptions)
    last_exc: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await fn(*args, **kwargs)
        except retryable as exc:
            last_exc = exc
            if attempt >= max_attempts:
                break
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs...",
                attempt, max_attempts, type(exc).__name__, delay,
            )
            await asyncio.sleep(delay)

    logger.error("All %d attempts failed: %s", max_attempts, last_exc)
    raise last_exc

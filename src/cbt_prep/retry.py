"""Bounded retry helpers for outbound calls."""
import asyncio
import logging

from cbt_prep.errors import RateLimitedError, is_retryable

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = (
    "You have reached the API rate limit. Please wait a moment and try again, "
    "or switch to another AI provider or model."
)


def backoff_delay(attempt: int, delay: float, backoff: str = "linear") -> float:
    """Wait before retry number `attempt` (1-based)."""
    if backoff == "exponential":
        return delay * (2 ** attempt)
    return delay * attempt


async def with_retry(fn, retries: int = 3, delay: float = 1.0, backoff: str = "linear"):
    """Call `fn()` up to `retries` times, retrying network and timeout errors only."""
    for attempt in range(1, retries + 1):
        try:
            return await fn()
        except Exception as e:
            if not is_retryable(e) or attempt == retries:
                raise
            wait = backoff_delay(attempt, delay, backoff)
            logger.warning("retrying after %s (%d/%d), waiting %.1fs", e.kind.value, attempt, retries, wait)
            await asyncio.sleep(wait)


async def with_rate_limit_retry(fn, retries: int = 3, base_delay: float = 1.0):
    """Retry rate-limited AI calls with exponential waits, then give up with advice."""
    last = None
    for attempt in range(retries):
        try:
            return await fn()
        except RateLimitedError as e:
            last = e
            wait = (2 ** (attempt + 1)) * base_delay
            logger.warning("rate limited (%d/%d), waiting %.1fs", attempt + 1, retries, wait)
            await asyncio.sleep(wait)
    raise RateLimitedError(RATE_LIMIT_MESSAGE) from last

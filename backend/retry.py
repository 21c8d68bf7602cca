# Retry with exponential backoff - the single retry policy for remote calls
import asyncio
import logging
import random
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from errors import NetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MaxRetriesExceeded(Exception):
    pass


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retry_on: Tuple[Type[BaseException], ...] = (NetworkError,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await fn() up to `retries` times, sleeping base_delay * 2**attempt
    (with jitter, capped at max_delay) between failures. Errors outside
    `retry_on` propagate immediately.
    """
    last_exception: BaseException | None = None

    for attempt in range(retries):
        try:
            return await fn()
        except retry_on as e:
            last_exception = e
            if attempt + 1 >= retries:
                logger.warning("Attempt %d/%d failed: %s", attempt + 1, retries, e)
                break
            delay = min(max_delay, base_delay * (2 ** attempt))
            delay = random.uniform(delay * 0.9, delay * 1.1)
            logger.info("Attempt %d/%d failed, retrying in %.1fs: %s", attempt + 1, retries, delay, e)
            await sleep(delay)

    raise MaxRetriesExceeded(f"All {retries} retry attempts failed.") from last_exception

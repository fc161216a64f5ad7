"""
Bounded polling.

Nodes behind load balancers can answer a read from a block older than the
receipt just observed, so post-write reads are retried a fixed number of
times before the last value is reported.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from .exceptions import PollTimeout
from ..utils import logger

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    *,
    attempts: int = 5,
    delay: float = 0.5,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Call ``fetch`` until ``predicate`` holds for its result.

    Sleeps ``delay`` seconds between attempts (never after the last one).

    Args:
        fetch: Coroutine function producing the value to test.
        predicate: Acceptance test for a fetched value.
        attempts: Maximum number of fetches, at least 1.
        delay: Fixed pause between fetches, seconds.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        The first value satisfying ``predicate``.

    Raises:
        PollTimeout: After ``attempts`` fetches without success; carries the
            last fetched value.
        ValueError: If ``attempts`` < 1.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    value = None
    for attempt in range(1, attempts + 1):
        value = await fetch()
        if predicate(value):
            return value
        logger.debug("poll attempt %d/%d not satisfied (value=%r)", attempt, attempts, value)
        if attempt < attempts:
            await sleep(delay)

    raise PollTimeout(
        f"Condition not met after {attempts} attempts",
        attempts=attempts,
        last_value=value,
    )

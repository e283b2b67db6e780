"""Backoff utilities.

`backoff_delay` computes the delay for a zero-based attempt index, capped at max_delay.
`exponential_backoff` is an async generator used for connection retries: it yields the
current delay so the caller can attempt an operation, then sleeps before the next attempt.
"""
import asyncio
from typing import AsyncIterator


def backoff_delay(attempt: int, initial_delay: float, max_delay: float, multiplier: float) -> float:
    if attempt <= 0:
        return min(initial_delay, max_delay)
    return min(initial_delay * (multiplier ** attempt), max_delay)


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[float]:
    for attempt in range(max_attempts):
        delay = backoff_delay(attempt, initial_delay, max_delay, multiplier)
        yield delay
        if attempt + 1 < max_attempts:
            await asyncio.sleep(backoff_delay(attempt + 1, initial_delay, max_delay, multiplier))

"""Delay strategies applied before a retry is re-published.

Re-publishing to the main routing key is how retries work on brokers without native
delayed redelivery. Where the broker supports per-queue TTL plus dead-lettering back to
the main exchange, that mechanism can replace both the strategy and the re-publish.
"""
from __future__ import annotations

from typing import Protocol

from ingestor.app.core.backoff import backoff_delay


class RetryDelayStrategy(Protocol):
    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before re-publishing a message whose current attempt is `attempt`."""
        ...


class ImmediateRetry:
    def delay_for(self, attempt: int) -> float:
        return 0.0


class ExponentialRetryDelay:
    def __init__(self, initial_delay: float, max_delay: float, multiplier: float = 2.0) -> None:
        self._initial_delay = float(initial_delay)
        self._max_delay = float(max_delay)
        self._multiplier = float(multiplier)

    def delay_for(self, attempt: int) -> float:
        return backoff_delay(attempt, self._initial_delay, self._max_delay, self._multiplier)


def create_retry_delay(
    strategy: str,
    *,
    initial_delay: float,
    max_delay: float,
    multiplier: float,
) -> RetryDelayStrategy:
    name = strategy.strip().lower()
    if name == "immediate":
        return ImmediateRetry()
    if name == "exponential":
        return ExponentialRetryDelay(initial_delay, max_delay, multiplier)
    raise ValueError(f"Unsupported retry delay strategy: {strategy}")

"""
Batch aggregator: groups decoded commands for persistence.

A BatchWorker blocks for the first item, then keeps collecting until it holds
batch_size items or batch_timeout has elapsed since that first item, whichever comes
first. Every item in a flushed batch is dispositioned on its own outcome.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from ingestor.app.core import SERVICE_NAME
from ingestor.app.domain.delivery import Delivery
from ingestor.app.domain.models import ChallengeUpsertCommand, ProcessingOutcome
from ingestor.app.application.persistence_applier import PersistenceApplier


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@dataclass(frozen=True)
class PendingUpsert:
    """A decoded command travelling with the delivery it came from."""

    delivery: Delivery
    command: ChallengeUpsertCommand


# outcome is None when the batch could not be evaluated at all.
OutcomeHandler = Callable[[Delivery, ProcessingOutcome | None], Awaitable[None]]


async def collect_batch(
    queue: asyncio.Queue[PendingUpsert],
    batch_size: int,
    batch_timeout: float,
) -> list[PendingUpsert]:
    first = await queue.get()
    batch = [first]
    deadline = time.monotonic() + batch_timeout
    while len(batch) < batch_size:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        try:
            batch.append(await asyncio.wait_for(queue.get(), timeout=remaining))
        except asyncio.TimeoutError:
            break
    return batch


class BatchWorker:
    def __init__(
        self,
        worker_id: int,
        queue: asyncio.Queue[PendingUpsert],
        applier: PersistenceApplier,
        on_outcome: OutcomeHandler,
        *,
        batch_size: int,
        batch_timeout: float,
    ) -> None:
        self._worker_id = worker_id
        self._queue = queue
        self._applier = applier
        self._on_outcome = on_outcome
        self._batch_size = batch_size
        self._batch_timeout = batch_timeout

    async def run(self) -> None:
        while True:
            batch = await collect_batch(self._queue, self._batch_size, self._batch_timeout)
            try:
                await self.flush(batch)
            finally:
                for _ in batch:
                    self._queue.task_done()

    async def flush(self, batch: list[PendingUpsert]) -> None:
        start = time.perf_counter()
        try:
            outcomes = await self._applier.apply_batch([item.command for item in batch])
        except Exception as exc:
            # apply() classifies its own failures; reaching here is a bug, so requeue all.
            logger.exception("batch {} apply failed: {}", self._worker_id, exc)
            outcomes = [None] * len(batch)

        results = await asyncio.gather(
            *(self._on_outcome(item.delivery, outcome) for item, outcome in zip(batch, outcomes)),
            return_exceptions=True,
        )
        for item, result in zip(batch, results):
            if isinstance(result, Exception):
                logger.error("outcome handling failed for {}: {}", item.command.external_id, result)

        succeeded = sum(1 for outcome in outcomes if outcome is not None and outcome.success)
        _log(
            "batch_flushed",
            worker_id=self._worker_id,
            size=len(batch),
            succeeded=succeeded,
            failed=len(batch) - succeeded,
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )

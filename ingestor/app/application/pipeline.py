"""
Ingestion pipeline: consumer handler plus staged workers over bounded queues.

Stages:
  handle_delivery (broker callback) -> intake queue -> decoder workers
      -> batch queue -> batch workers -> ack | FailureRouter
  decode failures go from the decoder worker straight to the FailureRouter.

Backpressure:
  The broker prefetch bounds unacked deliveries. The intake and batch queues are
  bounded too, so a full stage makes the previous stage's put() wait instead of
  buffering without limit.

Ownership:
  Each Delivery is held by exactly one stage at a time and settled once. Any unexpected
  exception settles the delivery with reject-and-requeue; nothing is dropped.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from loguru import logger

from ingestor.app.application.batcher import BatchWorker, PendingUpsert
from ingestor.app.application.failure_router import FailureRouter
from ingestor.app.application.persistence_applier import PersistenceApplier
from ingestor.app.constants import Disposition, FailureReason
from ingestor.app.core import SERVICE_NAME
from ingestor.app.domain import challenge_message
from ingestor.app.domain.delivery import Delivery
from ingestor.app.domain.errors import InvalidPayloadError
from ingestor.app.domain.models import ProcessingOutcome
from ingestor.app.domain.pipeline_config import PipelineConfig
from ingestor.app.ports.incoming_message import IncomingMessage


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@dataclass
class PipelineStats:
    received: int = 0
    acked: int = 0
    retried: int = 0
    dead_lettered: int = 0
    requeued: int = 0

    @property
    def settled(self) -> int:
        return self.acked + self.retried + self.dead_lettered + self.requeued


class IngestionPipeline:
    def __init__(
        self,
        config: PipelineConfig,
        applier: PersistenceApplier,
        router: FailureRouter,
    ) -> None:
        self._config = config
        self._applier = applier
        self._router = router
        self._intake: asyncio.Queue[Delivery] = asyncio.Queue(
            maxsize=config.prefetch_count * config.consumer_concurrency
        )
        self._batches: asyncio.Queue[PendingUpsert] = asyncio.Queue(
            maxsize=config.batch_size * config.batcher_concurrency
        )
        self._tasks: list[asyncio.Task[None]] = []
        self.stats = PipelineStats()

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        for worker_id in range(self._config.processor_concurrency):
            self._tasks.append(asyncio.create_task(self._decode_worker(worker_id)))
        for worker_id in range(self._config.batcher_concurrency):
            worker = BatchWorker(
                worker_id,
                self._batches,
                self._applier,
                self._settle_outcome,
                batch_size=self._config.batch_size,
                batch_timeout=self._config.batch_timeout_seconds,
            )
            self._tasks.append(asyncio.create_task(worker.run()))
        _log(
            "pipeline_started",
            processors=self._config.processor_concurrency,
            batchers=self._config.batcher_concurrency,
            batch_size=self._config.batch_size,
            batch_timeout_ms=self._config.batch_timeout_ms,
        )

    async def stop(self) -> None:
        """Wait for every accepted delivery to settle, then cancel the idle workers."""
        if not self._tasks:
            return
        await self._intake.join()
        await self._batches.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        _log("pipeline_stopped", **self._stats_fields())

    async def handle_delivery(self, message: IncomingMessage) -> None:
        """Broker callback: take ownership of the message and queue it for decoding."""
        delivery = Delivery(message)
        self.stats.received += 1
        try:
            await self._intake.put(delivery)
        except asyncio.CancelledError:
            await self._requeue_unsettled(delivery)
            raise

    async def _decode_worker(self, worker_id: int) -> None:
        while True:
            delivery = await self._intake.get()
            try:
                await self._decode_one(delivery)
            except Exception as exc:
                logger.exception("decoder {} failed: {}", worker_id, exc)
                await self._requeue_unsettled(delivery)
            finally:
                self._intake.task_done()

    async def _decode_one(self, delivery: Delivery) -> None:
        try:
            command = challenge_message.decode(delivery.body)
        except InvalidPayloadError as exc:
            _log("message_invalid_payload", attempt=delivery.retry_attempt, error=str(exc))
            await self._settle_outcome(
                delivery, ProcessingOutcome.failed(FailureReason.INVALID_PAYLOAD, str(exc))
            )
            return
        _log("message_received", external_id=command.external_id, attempt=delivery.retry_attempt)
        await self._batches.put(PendingUpsert(delivery=delivery, command=command))

    async def _settle_outcome(self, delivery: Delivery, outcome: ProcessingOutcome | None) -> None:
        try:
            if outcome is None:
                await self._settle(delivery, Disposition.REJECT_REQUEUE)
            elif outcome.success:
                await self._settle(delivery, Disposition.ACK)
            else:
                self._count_failure(delivery, outcome, await self._router.route(delivery, outcome))
        except Exception as exc:
            logger.exception("settling delivery failed: {}", exc)
            await self._requeue_unsettled(delivery)

    def _count_failure(self, delivery: Delivery, outcome: ProcessingOutcome, disposition: Disposition) -> None:
        if disposition is Disposition.REJECT_REQUEUE:
            self.stats.requeued += 1
        elif outcome.is_permanent_failure or delivery.retry_attempt >= self._config.max_retries:
            self.stats.dead_lettered += 1
        else:
            self.stats.retried += 1

    async def _settle(self, delivery: Delivery, disposition: Disposition) -> None:
        await delivery.settle(disposition)
        if disposition is Disposition.ACK:
            self.stats.acked += 1
        else:
            self.stats.requeued += 1
            _log("message_requeued", attempt=delivery.retry_attempt)

    async def _requeue_unsettled(self, delivery: Delivery) -> None:
        if delivery.settled:
            return
        try:
            await self._settle(delivery, Disposition.REJECT_REQUEUE)
        except Exception as exc:
            # Channel is gone; the broker redelivers unacked messages on its own.
            logger.error("requeue failed: {}", exc)

    def _stats_fields(self) -> dict[str, int]:
        return {
            "received": self.stats.received,
            "acked": self.stats.acked,
            "retried": self.stats.retried,
            "dead_lettered": self.stats.dead_lettered,
            "requeued": self.stats.requeued,
        }

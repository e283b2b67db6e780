"""
Failure classifier and retry/dead-letter router.

Per failed delivery:
  Failed -> DEAD_LETTER  (INVALID_PAYLOAD, VALIDATION_ERROR, or retries exhausted)
  Failed -> RETRY        (PROCESSING_ERROR with attempt < max_retries)
  then re-publish the original bytes and ACK the original delivery; the re-published
  copy becomes the delivery of record.
If the re-publish itself fails the original delivery is rejected with requeue, so the
broker redelivers it and the whole decision runs again. That is the only path where a
command can be applied twice; the upsert is idempotent on external_id.
"""
from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from ingestor.app.constants import (
    FAILURE_DETAILS_HEADER,
    FAILURE_REASON_HEADER,
    MAX_FAILURE_DETAILS_LENGTH,
    RETRY_COUNT_HEADER,
    Disposition,
    FailureReason,
    RouteDecision,
)
from ingestor.app.core import SERVICE_NAME
from ingestor.app.domain.delivery import Delivery
from ingestor.app.domain.models import ProcessingOutcome
from ingestor.app.domain.pipeline_config import PipelineConfig
from ingestor.app.domain.retry_delay import ImmediateRetry, RetryDelayStrategy
from ingestor.app.ports.message_publisher import MessagePublisher


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def classify(outcome: ProcessingOutcome) -> RouteDecision:
    if outcome.success:
        raise ValueError("cannot classify a successful outcome")
    if outcome.reason in (FailureReason.INVALID_PAYLOAD, FailureReason.VALIDATION_ERROR):
        return RouteDecision.DEAD_LETTER
    return RouteDecision.RETRY


class FailureRouter:
    def __init__(
        self,
        publisher: MessagePublisher,
        config: PipelineConfig,
        *,
        retry_delay: RetryDelayStrategy | None = None,
    ) -> None:
        self._publisher = publisher
        self._config = config
        self._retry_delay = retry_delay or ImmediateRetry()

    async def route(self, delivery: Delivery, outcome: ProcessingOutcome) -> Disposition:
        """Re-publish the failed delivery and settle it. Returns the disposition applied."""
        attempt = delivery.retry_attempt
        decision = classify(outcome)
        if decision is RouteDecision.RETRY and attempt >= self._config.max_retries:
            _log(
                "message_retries_exhausted",
                attempt=attempt,
                max_retries=self._config.max_retries,
            )
            decision = RouteDecision.DEAD_LETTER

        try:
            if decision is RouteDecision.RETRY:
                await self._republish_for_retry(delivery, attempt)
            else:
                await self._publish_to_dead_letter(delivery, attempt, outcome)
        except Exception as exc:
            logger.warning("re-publish failed ({}), requeueing original delivery: {}", decision.value, exc)
            await delivery.settle(Disposition.REJECT_REQUEUE)
            _log("message_requeued", decision=decision.value, attempt=attempt, error=str(exc))
            return Disposition.REJECT_REQUEUE

        await delivery.settle(Disposition.ACK)
        return Disposition.ACK

    async def _republish_for_retry(self, delivery: Delivery, attempt: int) -> None:
        delay = self._retry_delay.delay_for(attempt)
        if delay > 0:
            await asyncio.sleep(delay)
        next_attempt = attempt + 1
        await self._publisher.publish(
            delivery.body,
            routing_key=self._config.routing_key,
            headers={RETRY_COUNT_HEADER: next_attempt},
            exchange=self._config.exchange,
        )
        _log("message_retry_published", attempt=next_attempt, delay=delay)

    async def _publish_to_dead_letter(
        self,
        delivery: Delivery,
        attempt: int,
        outcome: ProcessingOutcome,
    ) -> None:
        reason = outcome.reason.value if outcome.reason else FailureReason.PROCESSING_ERROR.value
        details = (outcome.details or "")[:MAX_FAILURE_DETAILS_LENGTH]
        await self._publisher.publish(
            delivery.body,
            routing_key=self._config.dead_letter_routing_key,
            headers={
                RETRY_COUNT_HEADER: attempt,
                FAILURE_REASON_HEADER: reason,
                FAILURE_DETAILS_HEADER: details,
            },
            exchange=self._config.effective_dead_letter_exchange,
        )
        _log("message_dead_lettered", attempt=attempt, reason=reason, details=details)

"""RabbitMQ consumer: message handler bridging aio_pika deliveries into the pipeline."""
from __future__ import annotations

from typing import Awaitable, Callable

from aio_pika.abc import AbstractIncomingMessage
from loguru import logger

from ingestor.app.application.pipeline import IngestionPipeline
from ingestor.app.infrastructure.messaging.rabbitmq.aio_pika_message_adapter import AioPikaMessageAdapter


def create_message_handler(
    pipeline: IngestionPipeline,
) -> Callable[[AbstractIncomingMessage], Awaitable[None]]:
    """Create an async handler that hands each raw delivery to the pipeline.

    The pipeline owns the delivery from here on. If handing it over fails the raw message
    is rejected with requeue, unless it was already settled.
    """

    async def on_message(raw_message: AbstractIncomingMessage) -> None:
        try:
            await pipeline.handle_delivery(AioPikaMessageAdapter(raw_message))
        except Exception as e:
            logger.exception("message handoff failed: {}", e)
            if not raw_message.processed:
                await raw_message.reject(requeue=True)

    return on_message

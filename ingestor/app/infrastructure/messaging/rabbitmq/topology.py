"""Exchange/queue topology shared by the consumer and the publisher.

One durable direct exchange; the main queue and the dead-letter queue are both durable
and bound to it by their routing keys. A separate dead-letter exchange, when configured,
is declared as well and the dead-letter queue is bound to it instead.
"""
from __future__ import annotations

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractQueue

from ingestor.app.domain.pipeline_config import PipelineConfig


async def declare_topology(
    channel: AbstractChannel,
    config: PipelineConfig,
) -> tuple[dict[str, AbstractExchange], AbstractQueue]:
    """Declare exchanges and queues; returns the exchanges by name and the main queue."""
    exchange = await channel.declare_exchange(
        config.exchange, aio_pika.ExchangeType.DIRECT, durable=True
    )
    exchanges = {config.exchange: exchange}
    dead_letter_exchange = exchange
    if config.effective_dead_letter_exchange != config.exchange:
        dead_letter_exchange = await channel.declare_exchange(
            config.effective_dead_letter_exchange, aio_pika.ExchangeType.DIRECT, durable=True
        )
        exchanges[config.effective_dead_letter_exchange] = dead_letter_exchange

    queue = await channel.declare_queue(config.queue, durable=True)
    dead_letter_queue = await channel.declare_queue(config.dead_letter_queue, durable=True)
    await queue.bind(exchange, routing_key=config.routing_key)
    await dead_letter_queue.bind(dead_letter_exchange, routing_key=config.dead_letter_routing_key)
    return exchanges, queue

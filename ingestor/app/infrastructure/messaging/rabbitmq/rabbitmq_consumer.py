"""
RabbitMQ consumer: per-channel prefetch, topology and subscription.

Lifecycle:
  DISCONNECTED -> CONNECTING -> CONNECTED -> CHANNEL_OPEN -> TOPOLOGY_DECLARED -> READY.
  Connection lost: READY -> RECONNECTING -> ... -> READY, re-subscribing the stored handler.
  Shutdown: cancel() stops new deliveries; close() closes channels then the connection.

consumer_concurrency channels are opened, each with its own basic.qos(prefetch_count)
and its own consumer on the main queue, so unacked deliveries are bounded per channel.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from aio_pika.abc import AbstractChannel, AbstractQueue, AbstractRobustConnection
from loguru import logger

from ingestor.app.config.settings import Settings
from ingestor.app.core import SERVICE_NAME
from ingestor.app.domain.pipeline_config import PipelineConfig
from ingestor.app.infrastructure.messaging.rabbitmq.connection import BrokerConnection
from ingestor.app.infrastructure.messaging.rabbitmq.constants import ConsumerState
from ingestor.app.infrastructure.messaging.rabbitmq.topology import declare_topology

MessageHandler = Callable[[Any], Awaitable[None]]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQConsumer:
    """MessageConsumer implementation"""

    def __init__(self, settings: Settings, config: PipelineConfig) -> None:
        self._config = config
        self._broker = BrokerConnection(settings, component="consumer", on_lost=self._on_connection_lost)
        self._state = ConsumerState.DISCONNECTED
        self._channels: list[AbstractChannel] = []
        self._queues: list[AbstractQueue] = []
        self._subscriptions: list[tuple[AbstractQueue, str]] = []
        self._handler: MessageHandler | None = None
        # Guards subscribe/cancel against channel teardown.
        self._lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ConsumerState:
        return self._state

    async def connect(self) -> None:
        self._state = ConsumerState.CONNECTING
        _log("rmq_consumer_connecting", queue=self._config.queue, channels=self._config.consumer_concurrency)
        try:
            await self._broker.open(self._open_channels)
        except Exception:
            self._state = ConsumerState.DISCONNECTED
            raise
        self._state = ConsumerState.READY

    async def _open_channels(self, connection: AbstractRobustConnection) -> None:
        self._state = ConsumerState.CONNECTED
        channels: list[AbstractChannel] = []
        queues: list[AbstractQueue] = []
        for _ in range(self._config.consumer_concurrency):
            channel = await connection.channel()
            channels.append(channel)
            self._state = ConsumerState.CHANNEL_OPEN
            await channel.set_qos(prefetch_count=self._config.prefetch_count)
            _, queue = await declare_topology(channel, self._config)
            queues.append(queue)
        self._channels, self._queues = channels, queues
        self._state = ConsumerState.TOPOLOGY_DECLARED

    async def start_consuming(self, handler: MessageHandler) -> list[str]:
        async with self._lock:
            if not self._queues:
                raise RuntimeError("consumer not connected")
            self._handler = handler
            tags = await self._subscribe()
        _log("consumer_started", queue=self._config.queue, consumers=len(tags))
        return tags

    async def _subscribe(self) -> list[str]:
        if self._handler is None:
            raise RuntimeError("no message handler registered")
        self._subscriptions = [
            (queue, await queue.consume(self._handler, no_ack=False)) for queue in self._queues
        ]
        return [tag for _, tag in self._subscriptions]

    async def cancel(self) -> None:
        """Stop receiving new deliveries; in-flight ones can still be settled."""
        async with self._lock:
            for queue, tag in self._subscriptions:
                try:
                    await queue.cancel(tag)
                except Exception as e:
                    logger.warning("consumer cancel failed for {}: {}", tag, e)
            self._subscriptions = []
            self._handler = None
        _log("consumer_cancelled", queue=self._config.queue)

    def _on_connection_lost(self) -> None:
        self._state = ConsumerState.RECONNECTING
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        self._channels, self._queues, self._subscriptions = [], [], []
        if not await self._broker.reopen(self._open_channels):
            self._state = ConsumerState.DISCONNECTED
            return
        try:
            async with self._lock:
                if self._handler is not None:
                    await self._subscribe()
        except Exception as e:
            logger.exception("consumer re-subscribe failed: {}", e)
            self._state = ConsumerState.DISCONNECTED
            return
        self._state = ConsumerState.READY

    async def close(self) -> None:
        self._broker.stop_reconnecting()
        self._state = ConsumerState.CLOSING
        _log("consumer_shutdown")
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        async with self._lock:
            for channel in self._channels:
                try:
                    await channel.close()
                except Exception as e:
                    logger.warning("consumer channel close failed: {}", e)
            self._channels, self._queues, self._subscriptions = [], [], []
            await self._broker.close()
        self._state = ConsumerState.CLOSED

"""
RabbitMQ publisher over a confirm-mode channel.

Lifecycle:
  DISCONNECTED -> CONNECTING -> CONNECTED -> CONFIRM_ENABLED -> TOPOLOGY_DECLARED -> READY.
  Connection lost or publish error: READY -> RECONNECTING -> ... -> READY.
  Shutdown: CLOSING -> channel and connection closed -> CLOSED.

Bodies are published as given, so a retried or dead-lettered message carries the exact
bytes it arrived with. Every failure surfaces as PublishError.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Mapping

from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractRobustConnection
from loguru import logger

from ingestor.app.config.settings import Settings
from ingestor.app.core import SERVICE_NAME
from ingestor.app.domain.errors import PublishError
from ingestor.app.domain.pipeline_config import PipelineConfig
from ingestor.app.infrastructure.messaging.rabbitmq.connection import BrokerConnection
from ingestor.app.infrastructure.messaging.rabbitmq.constants import PublisherState
from ingestor.app.infrastructure.messaging.rabbitmq.topology import declare_topology


def _log(event: str, **kwargs: Any) -> None:
    """
    Structured log. bind() attaches key-value context (event, service_name, routing_key, ...)
    to the record; the payload lives in the bound fields, hence the empty message.
    """
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQPublisher:
    """MessagePublisher implementation."""

    def __init__(self, settings: Settings, config: PipelineConfig) -> None:
        self._publish_timeout = settings.publish_timeout_seconds
        self._config = config
        self._broker = BrokerConnection(settings, component="publisher", on_lost=self._on_connection_lost)
        self._state = PublisherState.DISCONNECTED
        self._channel: AbstractChannel | None = None
        self._exchanges: dict[str, AbstractExchange] = {}
        # Serialises channel teardown in _reconnect and close; publish takes no lock.
        self._lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> PublisherState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state == PublisherState.READY

    async def connect(self) -> None:
        self._state = PublisherState.CONNECTING
        try:
            await self._broker.open(self._open_channel)
        except Exception:
            self._state = PublisherState.DISCONNECTED
            raise
        self._state = PublisherState.READY

    async def _open_channel(self, connection: AbstractRobustConnection) -> None:
        self._state = PublisherState.CONNECTED
        channel = await connection.channel(publisher_confirms=True)
        self._state = PublisherState.CONFIRM_ENABLED
        self._exchanges, _ = await declare_topology(channel, self._config)
        self._channel = channel
        self._state = PublisherState.TOPOLOGY_DECLARED

    async def publish(
        self,
        body: bytes,
        *,
        routing_key: str,
        headers: Mapping[str, Any] | None = None,
        exchange: str | None = None,
    ) -> None:
        if self._state != PublisherState.READY:
            _log("publish_rejected", reason="publisher_not_ready", routing_key=routing_key)
            raise PublishError("publisher_not_ready")
        exchange_name = exchange or self._config.exchange
        target = self._exchanges.get(exchange_name)
        if target is None:
            _log("publish_rejected", reason="unknown_exchange", exchange=exchange_name)
            raise PublishError(f"unknown_exchange: {exchange_name}")

        message = Message(
            body,
            headers=dict(headers or {}),
            content_type="application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
        )
        start = time.perf_counter()
        try:
            await target.publish(message, routing_key=routing_key, timeout=self._publish_timeout)
        except Exception as e:
            _log("publish_failed", exchange=exchange_name, routing_key=routing_key, error=str(e))
            self._on_connection_lost()
            raise PublishError(str(e) or type(e).__name__) from e
        _log(
            "publish_confirmed",
            exchange=exchange_name,
            routing_key=routing_key,
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )

    def _on_connection_lost(self) -> None:
        self._state = PublisherState.RECONNECTING
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        async with self._lock:
            await self._close_channel()
        if await self._broker.reopen(self._open_channel):
            self._state = PublisherState.READY
        else:
            self._state = PublisherState.DISCONNECTED

    async def _close_channel(self) -> None:
        channel, self._channel = self._channel, None
        self._exchanges = {}
        if channel is not None:
            try:
                await channel.close()
            except Exception as e:
                logger.warning("publisher channel close failed: {}", e)

    async def close(self) -> None:
        self._broker.stop_reconnecting()
        self._state = PublisherState.CLOSING
        _log("publisher_shutdown")
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        async with self._lock:
            await self._close_channel()
            await self._broker.close()
        self._state = PublisherState.CLOSED

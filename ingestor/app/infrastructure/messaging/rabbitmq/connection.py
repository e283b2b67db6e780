"""
Broker connection shared by the consumer and the publisher.

BrokerConnection opens an aio_pika robust connection with exponential backoff and runs
the owner's setup (channels, qos, topology) on it; a setup failure counts as a failed
attempt. Unexpected closes are reported through on_lost, which runs on the event loop
even when aio_pika fires the close callback from elsewhere. The owner decides whether
to call reopen().
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import aio_pika
from aio_pika.abc import AbstractRobustConnection
from loguru import logger

from ingestor.app.config.settings import Settings
from ingestor.app.core import SERVICE_NAME
from ingestor.app.core.backoff import exponential_backoff

ConnectionSetup = Callable[[AbstractRobustConnection], Awaitable[None]]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class BrokerConnection:
    def __init__(self, settings: Settings, *, component: str, on_lost: Callable[[], None]) -> None:
        self._settings = settings
        self._component = component
        self._on_lost = on_lost
        self._connection: AbstractRobustConnection | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopping = False

    @property
    def connection(self) -> AbstractRobustConnection | None:
        return self._connection

    def _backoff(self):
        return exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        )

    async def open(self, setup: ConnectionSetup) -> None:
        """Connect and run setup. Raises the last error once max_connection_attempts is used up."""
        self._stopping = False
        attempt = 0
        async for delay in self._backoff():
            attempt += 1
            _log("rmq_connect_attempt", component=self._component, attempt=attempt, delay=delay)
            try:
                await self._open_once(setup)
            except Exception as e:
                logger.warning("rmq {} connect failed: {}", self._component, e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", component=self._component, attempt=attempt)
                    raise
                continue
            _log("rmq_connected", component=self._component)
            return
        raise RuntimeError(f"rmq {self._component} connect failed")

    async def reopen(self, setup: ConnectionSetup) -> bool:
        """Replace a lost connection. False when attempts ran out or stop_reconnecting() was called."""
        attempt = 0
        async for delay in self._backoff():
            if self._stopping:
                return False
            attempt += 1
            _log("rmq_reconnect_attempt", component=self._component, attempt=attempt, delay=delay)
            await self._discard()
            try:
                await self._open_once(setup)
            except Exception as e:
                logger.warning("rmq {} reconnect failed: {}", self._component, e)
                continue
            _log("rmq_reconnected", component=self._component)
            return True
        _log(
            "rmq_reconnect_exhausted",
            component=self._component,
            max_attempts=self._settings.max_connection_attempts,
        )
        return False

    def stop_reconnecting(self) -> None:
        self._stopping = True

    async def close(self) -> None:
        self.stop_reconnecting()
        await self._discard()

    async def _open_once(self, setup: ConnectionSetup) -> None:
        connection = await aio_pika.connect_robust(self._settings.broker_url)
        try:
            await setup(connection)
        except Exception:
            await self._close_quietly(connection)
            raise
        self._connection = connection
        self._loop = asyncio.get_running_loop()
        self._watch(connection)

    def _watch(self, connection: Any) -> None:
        # aio_pika 9 exposes close_callbacks on the underlying connection; older releases
        # only have add_close_callback.
        conn = getattr(connection, "connection", connection)
        callbacks = getattr(conn, "close_callbacks", None)
        if callbacks is not None and callable(getattr(callbacks, "add", None)):
            callbacks.add(self._on_connection_closed)
        elif callable(getattr(conn, "add_close_callback", None)):
            conn.add_close_callback(self._on_connection_closed)

    def _on_connection_closed(self, *args: Any, **kwargs: Any) -> None:
        if self._stopping or self._loop is None:
            return
        _log("broker_disconnect_detected", component=self._component)
        self._loop.call_soon_threadsafe(self._on_lost)

    async def _discard(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            await self._close_quietly(connection)

    async def _close_quietly(self, connection: AbstractRobustConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.warning("rmq {} connection close failed: {}", self._component, e)

"""Adapter: wrap aio_pika.IncomingMessage to implement ports.IncomingMessage."""
from __future__ import annotations

from typing import Any, Mapping

from aio_pika.abc import AbstractIncomingMessage


class AioPikaMessageAdapter:
    """Implements ingestor.app.ports.incoming_message.IncomingMessage for aio_pika."""

    def __init__(self, message: AbstractIncomingMessage) -> None:
        self._message = message

    @property
    def body(self) -> bytes:
        return self._message.body

    @property
    def headers(self) -> Mapping[str, Any]:
        return dict(self._message.headers or {})

    async def ack(self) -> None:
        await self._message.ack()

    async def reject(self, *, requeue: bool = True) -> None:
        await self._message.reject(requeue=requeue)

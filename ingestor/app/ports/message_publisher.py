"""Port: messaging publish contract. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Any, Mapping, Protocol


class MessagePublisher(Protocol):
    """Publishes raw bytes to an exchange/routing key.

    publish() raises ingestor.app.domain.errors.PublishError on transport failure.
    exchange=None means the configured main exchange.
    """

    async def connect(self) -> None: ...

    async def publish(
        self,
        body: bytes,
        *,
        routing_key: str,
        headers: Mapping[str, Any] | None = None,
        exchange: str | None = None,
    ) -> None: ...

    async def close(self) -> None: ...

    @property
    def ready(self) -> bool: ...

"""In-memory publisher for local mode and tests.

Published messages are only recorded, nothing consumes them. Retries and dead letters
are therefore visible in `messages` but never redelivered.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class PublishedMessage:
    body: bytes
    exchange: str
    routing_key: str
    headers: dict[str, Any] = field(default_factory=dict)


class InMemoryPublisher:
    def __init__(self, default_exchange: str = "") -> None:
        self._default_exchange = default_exchange
        self.messages: list[PublishedMessage] = []

    async def connect(self) -> None:
        return

    @property
    def ready(self) -> bool:
        return True

    async def publish(
        self,
        body: bytes,
        *,
        routing_key: str,
        headers: Mapping[str, Any] | None = None,
        exchange: str | None = None,
    ) -> None:
        self.messages.append(
            PublishedMessage(
                body=bytes(body),
                exchange=exchange or self._default_exchange,
                routing_key=routing_key,
                headers=dict(headers or {}),
            )
        )

    def routed_to(self, routing_key: str) -> list[PublishedMessage]:
        return [m for m in self.messages if m.routing_key == routing_key]

    async def close(self) -> None:
        return

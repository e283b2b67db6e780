"""Port: abstraction for an incoming queue message. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Any, Mapping, Protocol


class IncomingMessage(Protocol):
    """Transport-agnostic incoming message. Application uses this; broker adapters implement it."""

    @property
    def body(self) -> bytes: ...

    @property
    def headers(self) -> Mapping[str, Any]: ...

    async def ack(self) -> None: ...

    async def reject(self, *, requeue: bool = True) -> None: ...

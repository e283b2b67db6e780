"""Port: message consumer for queue. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol


class MessageConsumer(Protocol):
    async def connect(self) -> None: ...

    async def start_consuming(
        self,
        handler: Callable[[Any], Awaitable[None]],
    ) -> list[str]:
        """Start consuming on every channel; handler receives each raw broker delivery.

        Returns the consumer tags so the caller can cancel them.
        """
        ...

    async def cancel(self) -> None: ...

    async def close(self) -> None: ...

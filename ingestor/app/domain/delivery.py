"""Single-owner wrapper around a broker delivery.

A Delivery is created by the consumer loop and handed from stage to stage; whichever
stage holds it last settles it. Settling twice raises DeliveryAlreadySettledError
instead of sending a second ack/reject to the broker.
"""
from __future__ import annotations

from typing import Any, Mapping

from ingestor.app.constants import RETRY_COUNT_HEADER, Disposition
from ingestor.app.domain.errors import DeliveryAlreadySettledError
from ingestor.app.ports.incoming_message import IncomingMessage


def read_retry_attempt(headers: Mapping[str, Any] | None) -> int:
    """Current retry attempt from headers; 0 when absent or unreadable."""
    if not headers:
        return 0
    value = headers.get(RETRY_COUNT_HEADER)
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    try:
        attempt = int(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(attempt, 0)


class Delivery:
    def __init__(self, message: IncomingMessage) -> None:
        self._message = message
        self._disposition: Disposition | None = None

    @property
    def body(self) -> bytes:
        return self._message.body

    @property
    def headers(self) -> Mapping[str, Any]:
        return self._message.headers or {}

    @property
    def retry_attempt(self) -> int:
        return read_retry_attempt(self.headers)

    @property
    def settled(self) -> bool:
        return self._disposition is not None

    @property
    def disposition(self) -> Disposition | None:
        return self._disposition

    async def settle(self, disposition: Disposition) -> None:
        if self._disposition is not None:
            raise DeliveryAlreadySettledError(
                f"delivery already settled as {self._disposition.value}"
            )
        # Claim before awaiting so a concurrent settle cannot slip through.
        self._disposition = disposition
        if disposition is Disposition.ACK:
            await self._message.ack()
        else:
            await self._message.reject(requeue=True)

"""Unit tests for Delivery ownership and retry header parsing."""
from __future__ import annotations

import pytest

from ingestor.app.constants import RETRY_COUNT_HEADER, Disposition
from ingestor.app.domain.delivery import Delivery, read_retry_attempt
from ingestor.app.domain.errors import DeliveryAlreadySettledError
from tests.support import FakeMessage


@pytest.mark.parametrize(
    "headers, expected",
    [
        (None, 0),
        ({}, 0),
        ({RETRY_COUNT_HEADER: 3}, 3),
        ({RETRY_COUNT_HEADER: "4"}, 4),
        ({RETRY_COUNT_HEADER: b"2"}, 2),
        ({RETRY_COUNT_HEADER: -1}, 0),
        ({RETRY_COUNT_HEADER: "abc"}, 0),
        ({RETRY_COUNT_HEADER: True}, 0),
        ({"other": 9}, 0),
    ],
)
def test_read_retry_attempt(headers, expected):
    assert read_retry_attempt(headers) == expected


@pytest.mark.asyncio
async def test_ack_settles_once():
    msg = FakeMessage({"external_id": "c1"})
    delivery = Delivery(msg)

    await delivery.settle(Disposition.ACK)

    assert delivery.settled is True
    assert delivery.disposition is Disposition.ACK
    assert msg.ack_count == 1
    with pytest.raises(DeliveryAlreadySettledError):
        await delivery.settle(Disposition.REJECT_REQUEUE)
    assert msg.settle_count == 1


@pytest.mark.asyncio
async def test_reject_requeues():
    msg = FakeMessage(b"not-json")
    delivery = Delivery(msg)

    await delivery.settle(Disposition.REJECT_REQUEUE)

    assert msg.reject_count == 1
    assert msg.reject_requeue is True
    with pytest.raises(DeliveryAlreadySettledError):
        await delivery.settle(Disposition.ACK)


def test_delivery_exposes_body_and_attempt():
    msg = FakeMessage(b"raw", headers={RETRY_COUNT_HEADER: 2})
    delivery = Delivery(msg)
    assert delivery.body == b"raw"
    assert delivery.retry_attempt == 2
    assert delivery.settled is False


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
def test_non_finite_retry_header_reads_as_zero(value):
    assert read_retry_attempt({RETRY_COUNT_HEADER: value}) == 0
    assert Delivery(FakeMessage(b"raw", headers={RETRY_COUNT_HEADER: value})).retry_attempt == 0

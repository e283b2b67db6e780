import pytest

from ingestor.app.infrastructure.messaging.rabbitmq.connection import BrokerConnection
from tests.support import BrokerSettings, FakeConnection, wait_until


class RetryingSettings(BrokerSettings):
    max_connection_attempts = 3


def _patch_connect(monkeypatch, connections):
    import ingestor.app.infrastructure.messaging.rabbitmq.connection as mod

    async def _connect_robust(url):
        conn = connections.pop(0)
        if isinstance(conn, Exception):
            raise conn
        return conn

    monkeypatch.setattr(mod.aio_pika, "connect_robust", _connect_robust)


@pytest.mark.asyncio
async def test_open_retries_until_connected(monkeypatch):
    conn = FakeConnection()
    _patch_connect(monkeypatch, [ConnectionError("refused"), conn])
    broker = BrokerConnection(RetryingSettings(), component="test", on_lost=lambda: None)

    await broker.open(_noop)

    assert broker.connection is conn


@pytest.mark.asyncio
async def test_setup_failure_counts_as_attempt_and_closes_connection(monkeypatch):
    first, second = FakeConnection(), FakeConnection()
    _patch_connect(monkeypatch, [first, second])
    calls = []

    async def setup(connection):
        calls.append(connection)
        if connection is first:
            raise RuntimeError("declare failed")

    broker = BrokerConnection(RetryingSettings(), component="test", on_lost=lambda: None)
    await broker.open(setup)

    assert calls == [first, second]
    assert first.closed is True
    assert broker.connection is second
    assert first.callbacks == []


@pytest.mark.asyncio
async def test_open_raises_last_error_when_attempts_run_out(monkeypatch):
    _patch_connect(monkeypatch, [ConnectionError("one"), ConnectionError("two"), ConnectionError("three")])
    broker = BrokerConnection(RetryingSettings(), component="test", on_lost=lambda: None)

    with pytest.raises(ConnectionError, match="three"):
        await broker.open(_noop)


@pytest.mark.asyncio
async def test_unexpected_close_reports_lost_but_not_after_close(monkeypatch):
    conn = FakeConnection()
    _patch_connect(monkeypatch, [conn])
    lost = []
    broker = BrokerConnection(BrokerSettings(), component="test", on_lost=lambda: lost.append(1))
    await broker.open(_noop)

    conn.callbacks[0]()
    await wait_until(lambda: lost == [1])

    await broker.close()
    conn.callbacks[0]()
    assert conn.closed is True
    assert broker.connection is None
    assert lost == [1]


@pytest.mark.asyncio
async def test_reopen_gives_up_when_stopped(monkeypatch):
    _patch_connect(monkeypatch, [FakeConnection()])
    broker = BrokerConnection(BrokerSettings(), component="test", on_lost=lambda: None)
    await broker.open(_noop)
    broker.stop_reconnecting()

    assert await broker.reopen(_noop) is False


async def _noop(connection):
    return None

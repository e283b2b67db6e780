"""Mongo client lifecycle for the challenge store."""
from __future__ import annotations

import inspect
from typing import Any
from urllib.parse import quote_plus

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient

from ingestor.app.config.settings import Settings
from ingestor.app.core import SERVICE_NAME
from ingestor.app.core.backoff import exponential_backoff


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def build_mongo_uri(settings: Settings) -> str:
    address = f"{settings.database_host}:{settings.database_port}"
    if settings.database_user and settings.database_password:
        credentials = f"{quote_plus(settings.database_user)}:{quote_plus(settings.database_password)}"
        return f"mongodb://{credentials}@{address}"
    return f"mongodb://{address}"


async def close_mongo_client(client: Any) -> None:
    # motor's close() is sync; some drop-in clients return an awaitable.
    res = client.close()
    if inspect.isawaitable(res):
        await res


async def _ping(settings: Settings) -> AsyncIOMotorClient:
    client = AsyncIOMotorClient(
        build_mongo_uri(settings),
        serverSelectionTimeoutMS=settings.database_connection_timeout_ms,
    )
    try:
        await client.admin.command("ping")
    except Exception:
        await close_mongo_client(client)
        raise
    return client


async def create_mongo_client(settings: Settings) -> AsyncIOMotorClient:
    """Return a client that has answered a ping, retrying with backoff."""
    _log("mongo_connecting", host=settings.database_host, port=settings.database_port)
    attempt = 0
    async for delay in exponential_backoff(
        settings.initial_backoff_seconds,
        settings.max_backoff_seconds,
        settings.backoff_multiplier,
        settings.max_connection_attempts,
    ):
        attempt += 1
        try:
            client = await _ping(settings)
        except Exception as exc:
            logger.warning("mongo connect attempt {} failed (next delay {}s): {}", attempt, delay, exc)
            if attempt >= settings.max_connection_attempts:
                _log("mongo_connect_failed", attempt=attempt)
                raise
            continue
        _log("mongo_connected", attempt=attempt, database=settings.database_name)
        return client
    raise RuntimeError("mongo connect failed")

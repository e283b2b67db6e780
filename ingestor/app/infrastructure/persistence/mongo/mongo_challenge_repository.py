"""MongoDB implementation of ChallengeRepository."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ingestor.app.domain.models import Challenge, ChallengeUpsertCommand
from ingestor.app.domain.validation import validate_challenge
from ingestor.app.infrastructure.persistence.mongo.connection import close_mongo_client


class MongoChallengeRepository:
    """Concrete implementation of ChallengeRepository using MongoDB.

    The unique index on external_id makes the upsert idempotent. Two concurrent
    first-time upserts of the same key can both miss and race on insert; the loser
    gets DuplicateKeyError and is retried once, which then matches as an update.
    """

    def __init__(self, collection: AsyncIOMotorCollection, *, client: Any | None = None) -> None:
        self._collection = collection
        self._client = client

    async def ensure_indexes(self) -> None:
        """Infrastructure bootstrap: create indexes. Not part of the port."""
        await self._collection.create_index("external_id", unique=True, name="uq_challenges_external_id")
        await self._collection.create_index("updated_at", name="idx_challenges_updated_at")

    async def upsert(self, command: ChallengeUpsertCommand) -> Challenge:
        validate_challenge(command)
        try:
            doc = await self._find_one_and_upsert(command)
        except DuplicateKeyError:
            doc = await self._find_one_and_upsert(command)
        return Challenge.from_document(doc)

    async def _find_one_and_upsert(self, command: ChallengeUpsertCommand) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        return await self._collection.find_one_and_update(
            {"external_id": command.external_id},
            {
                "$setOnInsert": {
                    "external_id": command.external_id,
                    "created_at": now,
                },
                "$set": {
                    "name": command.name.strip() if command.name else command.name,
                    "description": command.description,
                    "metadata": dict(command.metadata),
                    "updated_at": now,
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def get_by_external_id(self, external_id: str) -> Challenge | None:
        doc = await self._collection.find_one({"external_id": external_id})
        if not doc:
            return None
        return Challenge.from_document(doc)

    async def close(self) -> None:
        """Close underlying Mongo client when owned by this adapter."""
        if self._client is not None:
            await close_mongo_client(self._client)

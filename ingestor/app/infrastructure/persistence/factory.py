"""Repository factory: selects and assembles persistence adapters."""
from __future__ import annotations

from ingestor.app.config.settings import Settings
from ingestor.app.infrastructure.persistence.inmemory.in_memory_challenge_repository import (
    InMemoryChallengeRepository,
)
from ingestor.app.infrastructure.persistence.mongo.connection import close_mongo_client, create_mongo_client
from ingestor.app.infrastructure.persistence.mongo.mongo_challenge_repository import (
    MongoChallengeRepository,
)
from ingestor.app.ports.challenge_repository import ChallengeRepository


async def create_challenge_repository(settings: Settings) -> ChallengeRepository:
    """Select repository adapter from configuration and return port type."""
    backend = settings.repository_backend.strip().lower()

    if backend == "mongo":
        mongo_client = await create_mongo_client(settings)
        repo = MongoChallengeRepository(
            mongo_client[settings.database_name][settings.database_collection],
            client=mongo_client,
        )
        try:
            await repo.ensure_indexes()
        except Exception:
            await close_mongo_client(mongo_client)
            raise
        return repo
    if backend == "inmemory":
        return InMemoryChallengeRepository()
    raise ValueError(f"Unsupported repository backend: {backend}")

"""In-memory ChallengeRepository for local mode and tests."""
from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone

from ingestor.app.domain.models import Challenge, ChallengeUpsertCommand
from ingestor.app.domain.validation import validate_challenge


class InMemoryChallengeRepository:
    def __init__(self) -> None:
        self._records: dict[str, Challenge] = {}
        self._lock = asyncio.Lock()
        self.upsert_calls = 0

    async def ensure_indexes(self) -> None:
        return

    async def upsert(self, command: ChallengeUpsertCommand) -> Challenge:
        validate_challenge(command)
        async with self._lock:
            self.upsert_calls += 1
            now = datetime.now(timezone.utc)
            name = command.name.strip() if command.name else ""
            existing = self._records.get(command.external_id)
            if existing is None:
                record = Challenge(
                    external_id=command.external_id,
                    name=name,
                    description=command.description,
                    metadata=dict(command.metadata),
                    created_at=now,
                    updated_at=now,
                )
            else:
                record = replace(
                    existing,
                    name=name,
                    description=command.description,
                    metadata=dict(command.metadata),
                    updated_at=now,
                )
            self._records[command.external_id] = record
            return record

    async def get_by_external_id(self, external_id: str) -> Challenge | None:
        return self._records.get(external_id)

    def all(self) -> list[Challenge]:
        return list(self._records.values())

    async def close(self) -> None:
        return

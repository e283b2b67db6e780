"""Abstract interface for challenge persistence (port)."""
from __future__ import annotations

from typing import Protocol

from ingestor.app.domain.models import Challenge, ChallengeUpsertCommand


class ChallengeRepository(Protocol):
    """Port: idempotent challenge upsert keyed by external_id.

    upsert() raises ChallengeValidationError when the command is rejected by validation;
    any other exception is treated as a transient store failure. Implementations must be
    safe to call concurrently; concurrent upserts of one external_id are last-write-wins.
    """

    async def ensure_indexes(self) -> None: ...

    async def upsert(self, command: ChallengeUpsertCommand) -> Challenge: ...

    async def get_by_external_id(self, external_id: str) -> Challenge | None: ...

    async def close(self) -> None:
        """Release resources (e.g. DB client). No-op allowed if nothing to close."""
        ...

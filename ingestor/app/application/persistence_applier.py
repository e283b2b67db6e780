from __future__ import annotations

import asyncio
from typing import Any, Sequence

from loguru import logger

from ingestor.app.constants import FailureReason
from ingestor.app.core import SERVICE_NAME
from ingestor.app.domain.errors import ChallengeValidationError
from ingestor.app.domain.models import ChallengeUpsertCommand, ProcessingOutcome
from ingestor.app.ports.challenge_repository import ChallengeRepository


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class PersistenceApplier:
    """Applies upsert commands to the challenge repository and classifies the result.

    Validation rejections are permanent (VALIDATION_ERROR); every other exception is
    treated as a transient store failure (PROCESSING_ERROR) and left to the retry router.
    """

    def __init__(self, repository: ChallengeRepository) -> None:
        self._repository = repository

    async def apply(self, command: ChallengeUpsertCommand) -> ProcessingOutcome:
        try:
            challenge = await self._repository.upsert(command)
        except ChallengeValidationError as exc:
            _log("challenge_rejected", external_id=command.external_id, details=exc.details)
            return ProcessingOutcome.failed(FailureReason.VALIDATION_ERROR, exc.describe())
        except Exception as exc:
            logger.warning("challenge upsert failed for {}: {}", command.external_id, exc)
            return ProcessingOutcome.failed(FailureReason.PROCESSING_ERROR, str(exc) or type(exc).__name__)

        _log("challenge_upserted", external_id=challenge.external_id, name=challenge.name)
        return ProcessingOutcome.ok()

    async def apply_batch(self, commands: Sequence[ChallengeUpsertCommand]) -> list[ProcessingOutcome]:
        """One outcome per command, in input order. apply() never raises, so items are independent."""
        if not commands:
            return []
        return list(await asyncio.gather(*(self.apply(command) for command in commands)))

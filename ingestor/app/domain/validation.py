"""Store-side validation for challenge upserts, shared by every repository adapter."""
from __future__ import annotations

from ingestor.app.constants import MIN_CHALLENGE_NAME_LENGTH
from ingestor.app.domain.errors import ChallengeValidationError
from ingestor.app.domain.models import ChallengeUpsertCommand


def validate_challenge(command: ChallengeUpsertCommand) -> None:
    errors: dict[str, list[str]] = {}

    name = command.name.strip() if isinstance(command.name, str) else ""
    if not name:
        errors.setdefault("name", []).append("can't be blank")
    elif len(name) < MIN_CHALLENGE_NAME_LENGTH:
        errors.setdefault("name", []).append(
            f"should be at least {MIN_CHALLENGE_NAME_LENGTH} character(s)"
        )

    if not isinstance(command.metadata, dict):
        errors.setdefault("metadata", []).append("is invalid")

    if errors:
        raise ChallengeValidationError(errors)

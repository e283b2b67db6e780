"""Domain exceptions raised across the ingestion pipeline."""
from __future__ import annotations

from typing import Mapping, Sequence


class InvalidPayloadError(ValueError):
    """Raw message bytes are not a decodable challenge command. Never retried."""


class ChallengeValidationError(Exception):
    """The store rejected a well-formed command (e.g. missing name). Never retried."""

    def __init__(self, details: Mapping[str, Sequence[str]]) -> None:
        self.details: dict[str, list[str]] = {field: list(msgs) for field, msgs in details.items()}
        super().__init__(self.describe())

    def describe(self) -> str:
        return "; ".join(
            f"{field}: {', '.join(messages)}" for field, messages in sorted(self.details.items())
        )


class PublishError(Exception):
    """Transport failure while publishing to the broker."""


class DeliveryAlreadySettledError(RuntimeError):
    """A delivery was acked or rejected more than once."""

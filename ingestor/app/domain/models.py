"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ingestor.app.constants import SUPPORTED_SCHEMA_VERSION, FailureReason


@dataclass(frozen=True)
class ChallengeUpsertCommand:
    """Decoded challenge definition; external_id is the idempotency key."""

    external_id: str
    name: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    schema_version: int = SUPPORTED_SCHEMA_VERSION

    def to_payload(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "external_id": self.external_id,
            "name": self.name,
            "description": self.description,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class Challenge:
    """Persisted challenge record (value object returned by repositories)."""

    external_id: str
    name: str
    description: str | None
    metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def from_document(doc: dict[str, Any]) -> "Challenge":
        return Challenge(
            external_id=str(doc["external_id"]),
            name=str(doc["name"]),
            description=doc.get("description"),
            metadata=dict(doc.get("metadata") or {}),
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )


@dataclass(frozen=True)
class ProcessingOutcome:
    """Result of decoding or persisting one message.

    success=True => reason and details are None.
    success=False => reason set; details carries a human-readable explanation.
    """

    success: bool
    reason: FailureReason | None = None
    details: str | None = None

    @classmethod
    def ok(cls) -> "ProcessingOutcome":
        return cls(success=True)

    @classmethod
    def failed(cls, reason: FailureReason, details: str | None = None) -> "ProcessingOutcome":
        return cls(success=False, reason=reason, details=details)

    @property
    def is_permanent_failure(self) -> bool:
        return self.reason in (FailureReason.INVALID_PAYLOAD, FailureReason.VALIDATION_ERROR)

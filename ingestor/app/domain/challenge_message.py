"""Challenge message contract: decode raw queue bytes into an upsert command.

Only the envelope is checked here (well-formed JSON object, idempotency key, field
types, schema version). Content rules such as "name is required" belong to the store
and surface as ChallengeValidationError from the repository instead.
"""
from __future__ import annotations

import json
from typing import Any

from ingestor.app.constants import SUPPORTED_SCHEMA_VERSION
from ingestor.app.domain.errors import InvalidPayloadError
from ingestor.app.domain.models import ChallengeUpsertCommand


def decode(raw: bytes) -> ChallengeUpsertCommand:
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as exc:
        raise InvalidPayloadError(f"payload is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise InvalidPayloadError("payload must be a JSON object")

    external_id = payload.get("external_id")
    if external_id is None or external_id == "":
        raise InvalidPayloadError("message missing required field: external_id")
    if not isinstance(external_id, str):
        raise InvalidPayloadError("external_id must be a string")

    schema_version = payload.get("schema_version", SUPPORTED_SCHEMA_VERSION)
    if schema_version != SUPPORTED_SCHEMA_VERSION or isinstance(schema_version, bool):
        raise InvalidPayloadError(f"unsupported schema_version: {schema_version!r}")

    _check_optional(payload, "name", str)
    _check_optional(payload, "description", str)
    _check_optional(payload, "metadata", dict)

    return ChallengeUpsertCommand(
        external_id=external_id,
        name=payload.get("name"),
        description=payload.get("description"),
        metadata=dict(payload.get("metadata") or {}),
        schema_version=SUPPORTED_SCHEMA_VERSION,
    )


def encode(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def _check_optional(payload: dict[str, Any], key: str, expected: type) -> None:
    value = payload.get(key)
    if value is not None and not isinstance(value, expected):
        raise InvalidPayloadError(f"{key} must be a {expected.__name__}")

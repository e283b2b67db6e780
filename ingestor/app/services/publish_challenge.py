"""
Publishes challenge definitions onto the ingestion exchange.

Accepts plain Python types and the MessagePublisher abstraction; returns an outcome
instead of raising so callers decide how to report failures.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ingestor.app.constants import SUPPORTED_SCHEMA_VERSION
from ingestor.app.domain import challenge_message
from ingestor.app.domain.pipeline_config import PipelineConfig
from ingestor.app.ports.message_publisher import MessagePublisher


@dataclass(frozen=True)
class PublishChallengeOutcome:
    """Result of publish_challenge.
    success=True => external_id set.
    success=False => error set; external_id set when it was present in the input.
    """
    success: bool
    external_id: str | None = None
    error: str | None = None


def build_challenge_payload(attrs: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "schema_version": SUPPORTED_SCHEMA_VERSION,
        "external_id": attrs.get("external_id"),
        "name": attrs.get("name"),
        "description": attrs.get("description"),
        "metadata": attrs.get("metadata") or {},
    }


async def publish_challenge(
    attrs: Mapping[str, Any],
    publisher: MessagePublisher,
    config: PipelineConfig,
) -> PublishChallengeOutcome:
    payload = build_challenge_payload(attrs)
    external_id = payload["external_id"]
    if not isinstance(external_id, str) or not external_id:
        return PublishChallengeOutcome(success=False, error="missing_external_id")

    if not publisher.ready:
        return PublishChallengeOutcome(success=False, external_id=external_id, error="publisher_not_ready")

    try:
        body = challenge_message.encode(payload)
    except (TypeError, ValueError) as e:
        return PublishChallengeOutcome(success=False, external_id=external_id, error=f"encode_failed: {e}")

    try:
        await publisher.publish(body, routing_key=config.routing_key, headers={}, exchange=config.exchange)
    except Exception as e:
        return PublishChallengeOutcome(success=False, external_id=external_id, error=str(e))
    return PublishChallengeOutcome(success=True, external_id=external_id)

"""Unit tests for challenge message decoding."""
from __future__ import annotations

import json

import pytest

from ingestor.app.domain import challenge_message
from ingestor.app.domain.errors import InvalidPayloadError


def _raw(payload: dict) -> bytes:
    return json.dumps(payload).encode()


def test_decode_full_payload():
    cmd = challenge_message.decode(
        _raw(
            {
                "schema_version": 1,
                "external_id": "challenge-purchase-frequency",
                "name": "Purchase Frequency",
                "description": "Rewards frequent purchases",
                "metadata": {"difficulty": "easy"},
            }
        )
    )
    assert cmd.external_id == "challenge-purchase-frequency"
    assert cmd.name == "Purchase Frequency"
    assert cmd.description == "Rewards frequent purchases"
    assert cmd.metadata == {"difficulty": "easy"}
    assert cmd.schema_version == 1


def test_decode_without_schema_version_or_optional_fields():
    cmd = challenge_message.decode(b'{"external_id":"c1","name":"Checker"}')
    assert cmd.external_id == "c1"
    assert cmd.name == "Checker"
    assert cmd.description is None
    assert cmd.metadata == {}


def test_missing_name_is_left_to_store_validation():
    cmd = challenge_message.decode(b'{"external_id":"c1"}')
    assert cmd.name is None


def test_null_metadata_defaults_to_empty_dict():
    cmd = challenge_message.decode(_raw({"external_id": "c1", "name": "abc", "metadata": None}))
    assert cmd.metadata == {}


@pytest.mark.parametrize(
    "raw",
    [
        b"not-json",
        b"\xff\xfe\x00",
        b"[1, 2, 3]",
        b'"just a string"',
    ],
)
def test_unparseable_or_non_object_payload_is_invalid(raw):
    with pytest.raises(InvalidPayloadError):
        challenge_message.decode(raw)


@pytest.mark.parametrize(
    "payload, match",
    [
        ({"name": "Missing External ID"}, "external_id"),
        ({"external_id": "", "name": "abc"}, "external_id"),
        ({"external_id": 42, "name": "abc"}, "external_id must be a string"),
        ({"external_id": "c1", "schema_version": 2}, "schema_version"),
        ({"external_id": "c1", "name": 7}, "name must be a str"),
        ({"external_id": "c1", "description": ["x"]}, "description must be a str"),
        ({"external_id": "c1", "metadata": "oops"}, "metadata must be a dict"),
    ],
)
def test_envelope_violations_are_invalid(payload, match):
    with pytest.raises(InvalidPayloadError, match=match):
        challenge_message.decode(_raw(payload))


def test_invalid_payload_error_is_value_error():
    with pytest.raises(ValueError):
        challenge_message.decode(b"{")


def test_encode_produces_decodable_json():
    raw = challenge_message.encode({"external_id": "c9", "name": "Nine", "metadata": {"k": 1}})
    assert json.loads(raw) == {"external_id": "c9", "name": "Nine", "metadata": {"k": 1}}
    assert challenge_message.decode(raw).external_id == "c9"


def test_decode_rejects_json_nested_past_the_recursion_limit():
    depth = 100_000
    raw = b'{"external_id":"x","metadata":' + b"[" * depth + b"]" * depth + b"}"

    with pytest.raises(InvalidPayloadError, match="not valid JSON"):
        challenge_message.decode(raw)

"""Worker-level constants shared across modules."""
from __future__ import annotations

from enum import Enum

RETRY_COUNT_HEADER = "x-retry-count"
FAILURE_REASON_HEADER = "x-failure-reason"
FAILURE_DETAILS_HEADER = "x-failure-details"

# Dead-letter diagnostics are headers, keep them small.
MAX_FAILURE_DETAILS_LENGTH = 512

SUPPORTED_SCHEMA_VERSION = 1
MIN_CHALLENGE_NAME_LENGTH = 3


class FailureReason(str, Enum):
    INVALID_PAYLOAD = "invalid_payload"
    VALIDATION_ERROR = "validation_error"
    PROCESSING_ERROR = "processing_error"


class RouteDecision(str, Enum):
    RETRY = "RETRY"
    DEAD_LETTER = "DEAD_LETTER"


class Disposition(str, Enum):
    ACK = "ACK"
    REJECT_REQUEUE = "REJECT_REQUEUE"

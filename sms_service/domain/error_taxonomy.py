from __future__ import annotations

from typing import Literal

from sms_service.domain.models import JobDisposition

# Canonical error vocabulary for the delivery pipeline.
ErrorCode = Literal[
    "validation_error",
    "job_payload_invalid",
    "message_not_found",
    "store_unavailable",
    "queue_unavailable",
    "dispatch_enqueue_failed",
    "internal_error",
]

RetryClassification = Literal["recoverable", "terminal"]

CANONICAL_ERROR_CODES: tuple[ErrorCode, ...] = (
    "validation_error",
    "job_payload_invalid",
    "message_not_found",
    "store_unavailable",
    "queue_unavailable",
    "dispatch_enqueue_failed",
    "internal_error",
)

# Errors where queue redelivery may succeed later.
RECOVERABLE_ERROR_CODES: frozenset[ErrorCode] = frozenset(
    {
        "store_unavailable",
        "queue_unavailable",
        "internal_error",
    }
)


def is_canonical_error_code(code: str) -> bool:
    return code in CANONICAL_ERROR_CODES


def resolve_error_code(code: str) -> ErrorCode:
    if is_canonical_error_code(code):
        return code  # type: ignore[return-value]
    # Keep logs stable even if a handler emitted an unsupported code.
    return "internal_error"


def classify_error(code: ErrorCode) -> RetryClassification:
    if code in RECOVERABLE_ERROR_CODES:
        return "recoverable"
    return "terminal"


def disposition_for_error(code: str) -> JobDisposition:
    """Recoverable failures leave the job un-acked for redelivery; terminal ones discard it."""
    if classify_error(resolve_error_code(code)) == "recoverable":
        return JobDisposition.NACK
    return JobDisposition.ACK

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
import json

from sms_service.domain.errors import DomainValidationError


# Canonical message lifecycle states.
#
# IMPORTANT:
# - Keep this enum synchronized with sms_service/domain/lifecycle.py
#   (ALLOWED_TRANSITIONS).
# - Keep this enum synchronized with the DB status CHECK constraint in
#   db/migrations/000001_bootstrap.up.sql.
class MessageStatus(StrEnum):
    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Message:
    id: str | None
    source_address: str
    destination_address: str
    content: str
    status: MessageStatus
    created_at: datetime
    updated_at: datetime
    failure_reason: str | None = None


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


@dataclass(frozen=True)
class DispatchJob:
    message_id: str

    def to_payload(self) -> str:
        return json.dumps({"message_id": self.message_id})

    @classmethod
    def from_payload(cls, payload: str | bytes) -> DispatchJob:
        try:
            data = json.loads(payload)
        except ValueError as exc:
            raise DomainValidationError([FieldError(field="payload", message=f"invalid job payload: {exc}")]) from exc

        message_id = data.get("message_id") if isinstance(data, dict) else None
        if not isinstance(message_id, str) or not message_id:
            raise DomainValidationError([FieldError(field="message_id", message="job payload has no message_id")])
        return cls(message_id=message_id)


@dataclass(frozen=True)
class QueueDelivery:
    """One visible copy of a job handed to a consumer.

    The same job may be delivered more than once; ``receipt`` identifies this
    particular delivery for ack/nack.
    """

    job_id: str
    receipt: str
    payload: str
    attempt: int


class JobDisposition(StrEnum):
    ACK = "ack"
    NACK = "nack"


@dataclass(frozen=True)
class GatewayOutcome:
    delivered: bool
    latency_ms: int
    failure_reason: str | None = None


@dataclass(frozen=True)
class ProcessResult:
    disposition: JobDisposition
    detail: str = ""
    message_id: str | None = None
    status: MessageStatus | None = None
    error_code: str | None = None

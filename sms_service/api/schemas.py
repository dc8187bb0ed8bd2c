from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from sms_service.domain.models import Message, MessageStatus


MESSAGE_ID_PATTERN = r"^msg_[0-9A-HJKMNP-TV-Z]{26}$"


class ErrorResponse(BaseModel):
    status: int
    message: str
    errors: list[str] | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class WorkerMetrics(BaseModel):
    started: bool
    stopped: bool
    ticks_total: int
    jobs_total: int
    idle_ticks_total: int
    errors_total: int
    acked_total: int
    nacked_total: int
    crashed_total: int


class ProducerMetrics(BaseModel):
    accepted_total: int
    enqueue_failures_total: int


class HealthResponse(BaseModel):
    status: str
    role: str
    mode: str


class ReadyResponse(BaseModel):
    status: str
    role: str
    mode: str
    worker_loop_enabled: bool
    worker_loop_ready: bool
    worker_metrics: WorkerMetrics
    producer_metrics: ProducerMetrics | None = None


class SendMessageRequest(BaseModel):
    # Field rules are checked by validate_send_request so all problems are reported together.
    source_number: str | None = None
    destination_number: str | None = None
    content: str | None = None


class MessageView(BaseModel):
    id: str = Field(pattern=MESSAGE_ID_PATTERN)
    source_number: str
    destination_number: str
    content: str
    status: MessageStatus
    failure_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_message(cls, message: Message) -> MessageView:
        return cls(
            id=message.id or "",
            source_number=message.source_address,
            destination_number=message.destination_address,
            content=message.content,
            status=message.status,
            failure_reason=message.failure_reason,
            created_at=message.created_at,
            updated_at=message.updated_at,
        )


class MessageStatsResponse(BaseModel):
    total: int
    by_status: dict[MessageStatus, int]

from __future__ import annotations

import logging

from sms_service.domain.error_taxonomy import classify_error, disposition_for_error, resolve_error_code
from sms_service.domain.errors import DomainValidationError, StoreUnavailableError
from sms_service.domain.lifecycle import mark_delivered, mark_failed
from sms_service.domain.models import (
    DispatchJob,
    JobDisposition,
    MessageStatus,
    ProcessResult,
    QueueDelivery,
)
from sms_service.workers.handlers.deps import WorkerDeps

COMPONENT_ID = "worker.deliver.process_job"
logger = logging.getLogger("sms.consumer")


async def process_job(deps: WorkerDeps, *, delivery: QueueDelivery) -> ProcessResult:
    """Resolve one dispatch job against the message's current stored state.

    Safe to run any number of times for the same job: only a PENDING message
    is sent, and the terminal status is written with a compare-and-swap on
    PENDING, so at most one transition is ever committed.
    """
    try:
        job = DispatchJob.from_payload(delivery.payload)
    except DomainValidationError as exc:
        return _failure(delivery, code="job_payload_invalid", detail=str(exc))

    try:
        message = await deps.store.get_by_id(job.message_id)
    except StoreUnavailableError as exc:
        return _failure(delivery, code="store_unavailable", detail=str(exc), message_id=job.message_id)

    if message is None or message.id is None:
        logger.warning(
            "message not found, job discarded",
            extra={"job_id": delivery.job_id, "message_id": job.message_id, "error_code": "message_not_found"},
        )
        return ProcessResult(
            disposition=JobDisposition.ACK,
            detail="message not found",
            message_id=job.message_id,
            error_code="message_not_found",
        )

    if message.status != MessageStatus.PENDING:
        logger.info(
            "message already resolved, job discarded",
            extra={"job_id": delivery.job_id, "message_id": message.id, "status": message.status.value},
        )
        return ProcessResult(
            disposition=JobDisposition.ACK,
            detail="message already resolved",
            message_id=message.id,
            status=message.status,
        )

    outcome = await deps.gateway.send(message)
    if outcome.delivered:
        resolved = mark_delivered(message, now=deps.clock())
    else:
        resolved = mark_failed(message, reason=outcome.failure_reason or "", now=deps.clock())

    try:
        committed = await deps.store.conditional_update(
            message_id=message.id,
            expected_status=MessageStatus.PENDING,
            new_status=resolved.status,
            failure_reason=resolved.failure_reason,
            updated_at=resolved.updated_at,
        )
    except StoreUnavailableError as exc:
        return _failure(delivery, code="store_unavailable", detail=str(exc), message_id=message.id)

    if not committed:
        logger.info(
            "message resolved concurrently, transition dropped",
            extra={"job_id": delivery.job_id, "message_id": message.id, "status": resolved.status.value},
        )
        return ProcessResult(
            disposition=JobDisposition.ACK,
            detail="transition dropped",
            message_id=message.id,
        )

    if resolved.status == MessageStatus.DELIVERED:
        logger.info(
            "message delivered",
            extra={"job_id": delivery.job_id, "message_id": message.id, "latency_ms": outcome.latency_ms},
        )
    else:
        logger.warning(
            "message delivery failed",
            extra={
                "job_id": delivery.job_id,
                "message_id": message.id,
                "failure_reason": resolved.failure_reason,
                "latency_ms": outcome.latency_ms,
            },
        )
    return ProcessResult(
        disposition=JobDisposition.ACK,
        detail=f"message {resolved.status.value.lower()}",
        message_id=message.id,
        status=resolved.status,
    )


def _failure(
    delivery: QueueDelivery,
    *,
    code: str,
    detail: str,
    message_id: str | None = None,
) -> ProcessResult:
    error_code = resolve_error_code(code)
    disposition = disposition_for_error(error_code)
    logger.warning(
        "dispatch job failed",
        extra={
            "job_id": delivery.job_id,
            "message_id": message_id,
            "error_code": error_code,
            "retry_classification": classify_error(error_code),
            "attempt": delivery.attempt,
            "detail": detail,
        },
    )
    return ProcessResult(
        disposition=disposition,
        detail=detail,
        message_id=message_id,
        error_code=error_code,
    )

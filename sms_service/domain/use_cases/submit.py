from __future__ import annotations

from dataclasses import dataclass, field
import logging

from sms_service.domain.clock import Clock, utc_now
from sms_service.domain.contracts import DispatchQueue, MessageStore
from sms_service.domain.errors import DispatchEnqueueFailedError, DomainInvariantError
from sms_service.domain.lifecycle import new_pending_message
from sms_service.domain.models import DispatchJob, Message

COMPONENT_ID = "domain.message.accept"
logger = logging.getLogger("sms.producer")


@dataclass
class ProducerStats:
    accepted_total: int = 0
    enqueue_failures_total: int = 0


@dataclass
class MessageProducer:
    store: MessageStore
    queue: DispatchQueue
    clock: Clock = utc_now
    stats: ProducerStats = field(default_factory=ProducerStats)

    async def accept(self, *, source_address: str, destination_address: str, content: str) -> Message:
        """Persist a PENDING message, then publish a dispatch job for it.

        Store failures propagate and nothing is published. If publishing fails
        the message stays PENDING with no job in flight and
        DispatchEnqueueFailedError is raised; there is no automatic requeue.
        """
        pending = new_pending_message(
            source_address=source_address,
            destination_address=destination_address,
            content=content,
            now=self.clock(),
        )
        message = await self.store.create(pending)
        if message.id is None:
            raise DomainInvariantError("store returned a message without id")

        try:
            job_id = await self.queue.publish(DispatchJob(message_id=message.id))
        except Exception as exc:
            self.stats.enqueue_failures_total += 1
            logger.error(
                "dispatch enqueue failed, message left pending",
                extra={
                    "message_id": message.id,
                    "error_code": "dispatch_enqueue_failed",
                    "detail": str(exc),
                },
            )
            raise DispatchEnqueueFailedError(message, cause=exc) from exc

        self.stats.accepted_total += 1
        logger.info(
            "message accepted",
            extra={"message_id": message.id, "job_id": job_id, "status": message.status.value},
        )
        return message

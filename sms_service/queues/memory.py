from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
import logging
import time
import uuid

from sms_service.domain.ids import new_dispatch_job_id
from sms_service.domain.models import DispatchJob, QueueDelivery

logger = logging.getLogger("sms.queue")


@dataclass
class _QueuedJob:
    job_id: str
    payload: str
    attempts: int = 0


@dataclass
class _Lease:
    job: _QueuedJob
    consumer: str
    expires_at: float


@dataclass
class InMemoryDispatchQueue:
    """Single-process queue with visibility leases.

    Received jobs are hidden until acked, nacked or their lease runs out, at
    which point ``reclaim_expired`` makes them visible again. Only usable when
    producer and consumer share one process.
    """

    visibility_timeout_seconds: float = 30.0
    clock: Callable[[], float] = time.monotonic
    ready: deque[_QueuedJob] = field(default_factory=deque)
    in_flight: dict[str, _Lease] = field(default_factory=dict)
    published: list[str] = field(default_factory=list)
    acked: list[str] = field(default_factory=list)
    nacked: list[str] = field(default_factory=list)

    async def publish(self, job: DispatchJob) -> str:
        queued = _QueuedJob(job_id=new_dispatch_job_id(), payload=job.to_payload())
        self.ready.append(queued)
        self.published.append(queued.job_id)
        return queued.job_id

    async def receive(self, *, consumer: str) -> QueueDelivery | None:
        if not self.ready:
            return None
        queued = self.ready.popleft()
        queued.attempts += 1
        receipt = uuid.uuid4().hex
        self.in_flight[receipt] = _Lease(
            job=queued,
            consumer=consumer,
            expires_at=self.clock() + self.visibility_timeout_seconds,
        )
        return QueueDelivery(
            job_id=queued.job_id,
            receipt=receipt,
            payload=queued.payload,
            attempt=queued.attempts,
        )

    async def ack(self, delivery: QueueDelivery) -> None:
        lease = self.in_flight.pop(delivery.receipt, None)
        if lease is None:
            logger.info(
                "ack for expired lease ignored",
                extra={"job_id": delivery.job_id},
            )
            return
        self.acked.append(delivery.job_id)

    async def nack(self, delivery: QueueDelivery) -> None:
        lease = self.in_flight.pop(delivery.receipt, None)
        if lease is None:
            return
        self.nacked.append(delivery.job_id)
        self.ready.append(lease.job)

    async def reclaim_expired(self) -> int:
        now = self.clock()
        expired = [receipt for receipt, lease in self.in_flight.items() if lease.expires_at <= now]
        for receipt in expired:
            lease = self.in_flight.pop(receipt)
            self.ready.append(lease.job)
            logger.warning(
                "dispatch lease expired, job visible again",
                extra={"job_id": lease.job.job_id, "worker": lease.consumer},
            )
        return len(expired)

    def depth(self) -> int:
        return len(self.ready) + len(self.in_flight)

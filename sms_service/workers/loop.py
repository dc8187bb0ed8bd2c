from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import logging

from sms_service.domain.contracts import DispatchQueue
from sms_service.domain.models import JobDisposition, ProcessResult, QueueDelivery

ProcessHandler = Callable[[QueueDelivery], Awaitable[ProcessResult]]
logger = logging.getLogger("runtime")


@dataclass
class WorkerLoopStats:
    acked_total: int = 0
    nacked_total: int = 0
    crashed_total: int = 0


@dataclass
class WorkerLoop:
    role: str
    queue: DispatchQueue
    process: ProcessHandler
    stats: WorkerLoopStats = field(default_factory=WorkerLoopStats)

    async def run_once(self, *, worker_id: str | None = None) -> bool:
        """Take at most one job from the queue and settle it; False when the queue was empty."""
        consumer = worker_id or self.role
        delivery = await self.queue.receive(consumer=consumer)
        if delivery is None:
            return False

        try:
            result = await self.process(delivery)
        except Exception:
            # One bad job must not take the worker down; leave it for redelivery.
            self.stats.crashed_total += 1
            logger.exception(
                "dispatch job crashed",
                extra={"role": self.role, "worker": consumer, "job_id": delivery.job_id},
            )
            await self._settle(delivery, JobDisposition.NACK)
            return True

        await self._settle(delivery, result.disposition)
        return True

    async def _settle(self, delivery: QueueDelivery, disposition: JobDisposition) -> None:
        if disposition == JobDisposition.ACK:
            await self.queue.ack(delivery)
            self.stats.acked_total += 1
        else:
            await self.queue.nack(delivery)
            self.stats.nacked_total += 1

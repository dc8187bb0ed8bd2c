from __future__ import annotations

from dataclasses import dataclass
import uuid

from sms_service.domain.errors import TransientQueueError
from sms_service.domain.ids import new_dispatch_job_id
from sms_service.domain.models import DispatchJob, QueueDelivery
from sms_service.repositories.postgres import AsyncpgPoolManager, acquire_connection
from sms_service.repositories.sql_loader import load_sql


SQL_PUBLISH_JOB = load_sql("publish_job.sql")
SQL_CLAIM_JOB = load_sql("claim_job.sql")
SQL_ACK_JOB = load_sql("ack_job.sql")
SQL_NACK_JOB = load_sql("nack_job.sql")
SQL_RECLAIM_EXPIRED_JOBS = load_sql("reclaim_expired_jobs.sql")


@dataclass
class PostgresDispatchQueue:
    """Table-backed queue; claims use SELECT ... FOR UPDATE SKIP LOCKED.

    A claimed job is hidden by pushing ``visible_at`` forward by the visibility
    timeout, so a crashed consumer's job becomes claimable again on its own.
    """

    pool_manager: AsyncpgPoolManager
    visibility_timeout_seconds: float = 30.0

    async def publish(self, job: DispatchJob) -> str:
        async with acquire_connection(self.pool_manager, error_type=TransientQueueError) as conn:
            job_id = await conn.fetchval(SQL_PUBLISH_JOB, new_dispatch_job_id(), job.to_payload())
        if job_id is None:
            raise TransientQueueError("dispatch job insert returned no row")
        return str(job_id)

    async def receive(self, *, consumer: str) -> QueueDelivery | None:
        async with acquire_connection(self.pool_manager, error_type=TransientQueueError) as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    SQL_CLAIM_JOB,
                    consumer,
                    float(self.visibility_timeout_seconds),
                    uuid.uuid4().hex,
                )
        if row is None:
            return None
        return QueueDelivery(
            job_id=row["job_id"],
            receipt=row["receipt"],
            payload=row["payload"],
            attempt=int(row["attempts"]),
        )

    async def ack(self, delivery: QueueDelivery) -> None:
        async with acquire_connection(self.pool_manager, error_type=TransientQueueError) as conn:
            await conn.execute(SQL_ACK_JOB, delivery.job_id, delivery.receipt)

    async def nack(self, delivery: QueueDelivery) -> None:
        async with acquire_connection(self.pool_manager, error_type=TransientQueueError) as conn:
            await conn.execute(SQL_NACK_JOB, delivery.job_id, delivery.receipt)

    async def reclaim_expired(self) -> int:
        async with acquire_connection(self.pool_manager, error_type=TransientQueueError) as conn:
            status = await conn.execute(SQL_RECLAIM_EXPIRED_JOBS)
        return _affected_rows(status)


def _affected_rows(status: str) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 3".
    try:
        return int(status.rsplit(" ", maxsplit=1)[-1])
    except (ValueError, AttributeError):
        return 0

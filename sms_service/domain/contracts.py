from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from sms_service.domain.models import DispatchJob, GatewayOutcome, Message, MessageStatus, QueueDelivery


# Clauses the Postgres backends rely on for at-most-one transition and exclusive claims.
CONDITIONAL_UPDATE_SQL_CONTRACT = "AND status = $2"
CLAIM_SQL_CONTRACT = "FOR UPDATE SKIP LOCKED"


@runtime_checkable
class MessageStore(Protocol):
    """Durable keyed storage for messages.

    Every method raises StoreUnavailableError when the backend cannot be
    reached. ``conditional_update`` is the only mutation after create and must
    be atomic per record: it succeeds only while the stored status still equals
    ``expected_status``.
    """

    async def create(self, message: Message) -> Message: ...

    async def get_by_id(self, message_id: str) -> Message | None: ...

    async def conditional_update(
        self,
        *,
        message_id: str,
        expected_status: MessageStatus,
        new_status: MessageStatus,
        failure_reason: str | None,
        updated_at: datetime,
    ) -> bool: ...

    async def find_by_source(self, address: str) -> list[Message]: ...

    async def find_by_destination(self, address: str) -> list[Message]: ...

    async def find_by_status(self, status: MessageStatus) -> list[Message]: ...

    async def count_by_status(self) -> dict[MessageStatus, int]: ...


@runtime_checkable
class DispatchQueue(Protocol):
    """At-least-once, loosely ordered notification channel.

    A received delivery stays hidden from other consumers until it is acked,
    nacked or its visibility lease runs out. Duplicate delivery is allowed.
    Transport failures raise TransientQueueError.
    """

    async def publish(self, job: DispatchJob) -> str: ...

    async def receive(self, *, consumer: str) -> QueueDelivery | None: ...

    async def ack(self, delivery: QueueDelivery) -> None: ...

    async def nack(self, delivery: QueueDelivery) -> None: ...

    async def reclaim_expired(self) -> int: ...


@runtime_checkable
class CarrierGateway(Protocol):
    async def send(self, message: Message) -> GatewayOutcome: ...

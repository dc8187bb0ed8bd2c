from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from sms_service.domain.errors import DomainInvariantError
from sms_service.domain.ids import new_message_public_id
from sms_service.domain.models import Message, MessageStatus


@dataclass
class _MessageRow:
    id: int
    public_id: str
    source_address: str
    destination_address: str
    content: str
    status: MessageStatus
    created_at: datetime
    updated_at: datetime
    failure_reason: str | None = None


@dataclass
class InMemoryMessageStore:
    """Non-network store with deterministic ordering for local and test mode.

    All methods run to completion without awaiting, so each call is atomic with
    respect to other coroutines on the same event loop.
    """

    rows: dict[str, _MessageRow] = field(default_factory=dict)
    updates: list[tuple[str, MessageStatus, MessageStatus]] = field(default_factory=list)
    next_row_id: int = 1

    async def create(self, message: Message) -> Message:
        if message.id is not None:
            raise DomainInvariantError("message id is assigned by the store")
        public_id = new_message_public_id()
        row = _MessageRow(
            id=self.next_row_id,
            public_id=public_id,
            source_address=message.source_address,
            destination_address=message.destination_address,
            content=message.content,
            status=message.status,
            created_at=message.created_at,
            updated_at=message.updated_at,
            failure_reason=message.failure_reason,
        )
        self.rows[public_id] = row
        self.next_row_id += 1
        return _to_message(row)

    async def get_by_id(self, message_id: str) -> Message | None:
        row = self.rows.get(message_id)
        if row is None:
            return None
        return _to_message(row)

    async def conditional_update(
        self,
        *,
        message_id: str,
        expected_status: MessageStatus,
        new_status: MessageStatus,
        failure_reason: str | None,
        updated_at: datetime,
    ) -> bool:
        row = self.rows.get(message_id)
        if row is None or row.status != expected_status:
            return False
        row.status = new_status
        row.failure_reason = failure_reason
        row.updated_at = updated_at
        self.updates.append((message_id, expected_status, new_status))
        return True

    async def find_by_source(self, address: str) -> list[Message]:
        return self._select(lambda row: row.source_address == address)

    async def find_by_destination(self, address: str) -> list[Message]:
        return self._select(lambda row: row.destination_address == address)

    async def find_by_status(self, status: MessageStatus) -> list[Message]:
        return self._select(lambda row: row.status == status)

    async def count_by_status(self) -> dict[MessageStatus, int]:
        counts = Counter(row.status for row in self.rows.values())
        return {status: counts.get(status, 0) for status in MessageStatus}

    def _select(self, predicate) -> list[Message]:
        matched = [row for row in self.rows.values() if predicate(row)]
        matched.sort(key=lambda row: (row.created_at, row.id))
        return [_to_message(row) for row in matched]


def _to_message(row: _MessageRow) -> Message:
    return Message(
        id=row.public_id,
        source_address=row.source_address,
        destination_address=row.destination_address,
        content=row.content,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
        failure_reason=row.failure_reason,
    )

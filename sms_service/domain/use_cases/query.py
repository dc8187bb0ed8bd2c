from __future__ import annotations

from dataclasses import dataclass

from sms_service.domain.contracts import MessageStore
from sms_service.domain.models import Message, MessageStatus

COMPONENT_ID = "domain.message.query"


@dataclass(frozen=True)
class MessageQueryService:
    """Read-only views over the store; every call hits the store directly."""

    store: MessageStore

    async def get_by_id(self, message_id: str) -> Message | None:
        return await self.store.get_by_id(message_id)

    async def list_by_source(self, address: str) -> list[Message]:
        return await self.store.find_by_source(address)

    async def list_by_destination(self, address: str) -> list[Message]:
        return await self.store.find_by_destination(address)

    async def list_by_participant(self, address: str) -> list[Message]:
        """Messages sent from or to ``address``.

        A message whose source equals its destination matches both lookups but
        is returned once.
        """
        sent = await self.store.find_by_source(address)
        received = await self.store.find_by_destination(address)

        merged: dict[str, Message] = {}
        for message in (*sent, *received):
            if message.id is not None:
                merged.setdefault(message.id, message)
        return sorted(merged.values(), key=lambda message: message.created_at)

    async def list_by_status(self, status: MessageStatus) -> list[Message]:
        return await self.store.find_by_status(status)

    async def count_by_status(self) -> dict[MessageStatus, int]:
        return await self.store.count_by_status()

from __future__ import annotations

import asyncio

import pytest

from sms_service.domain.lifecycle import mark_delivered, mark_failed, new_pending_message
from sms_service.domain.models import Message, MessageStatus
from sms_service.domain.use_cases.query import MessageQueryService
from sms_service.repositories.stub import InMemoryMessageStore
from tests.fakes import TickingClock

ALICE = "+15550001111"
BOB = "+15550002222"
CAROL = "+15550003333"


async def _seed(store: InMemoryMessageStore, clock: TickingClock, source: str, destination: str) -> Message:
    return await store.create(
        new_pending_message(
            source_address=source,
            destination_address=destination,
            content=f"{source}->{destination}",
            now=clock(),
        )
    )


async def _resolve(store: InMemoryMessageStore, resolved: Message) -> None:
    assert resolved.id is not None
    committed = await store.conditional_update(
        message_id=resolved.id,
        expected_status=MessageStatus.PENDING,
        new_status=resolved.status,
        failure_reason=resolved.failure_reason,
        updated_at=resolved.updated_at,
    )
    assert committed is True


@pytest.mark.unit
def test_participant_view_is_union_of_sent_and_received() -> None:
    store = InMemoryMessageStore()
    clock = TickingClock()
    queries = MessageQueryService(store=store)

    async def _run() -> None:
        sent = await _seed(store, clock, ALICE, BOB)
        received = await _seed(store, clock, CAROL, ALICE)
        await _seed(store, clock, BOB, CAROL)

        participant = await queries.list_by_participant(ALICE)

        assert [message.id for message in participant] == [sent.id, received.id]
        assert [message.id for message in await queries.list_by_source(ALICE)] == [sent.id]
        assert [message.id for message in await queries.list_by_destination(ALICE)] == [received.id]

    asyncio.run(_run())


@pytest.mark.unit
def test_self_addressed_message_is_listed_once() -> None:
    store = InMemoryMessageStore()
    clock = TickingClock()
    queries = MessageQueryService(store=store)

    async def _run() -> None:
        note = await _seed(store, clock, ALICE, ALICE)

        participant = await queries.list_by_participant(ALICE)

        assert [message.id for message in participant] == [note.id]

    asyncio.run(_run())


@pytest.mark.unit
def test_participant_view_is_ordered_by_creation_time() -> None:
    store = InMemoryMessageStore()
    clock = TickingClock()
    queries = MessageQueryService(store=store)

    async def _run() -> None:
        first = await _seed(store, clock, BOB, ALICE)
        second = await _seed(store, clock, ALICE, CAROL)
        third = await _seed(store, clock, CAROL, ALICE)

        participant = await queries.list_by_participant(ALICE)

        assert [message.id for message in participant] == [first.id, second.id, third.id]

    asyncio.run(_run())


@pytest.mark.unit
def test_unknown_address_and_id_return_empty_results() -> None:
    queries = MessageQueryService(store=InMemoryMessageStore())

    async def _run() -> None:
        assert await queries.list_by_participant("+19999999999") == []
        assert await queries.get_by_id("msg_missing") is None

    asyncio.run(_run())


@pytest.mark.unit
def test_status_views_reflect_resolved_messages() -> None:
    store = InMemoryMessageStore()
    clock = TickingClock()
    queries = MessageQueryService(store=store)

    async def _run() -> None:
        delivered = await _seed(store, clock, ALICE, BOB)
        failed = await _seed(store, clock, ALICE, CAROL)
        pending = await _seed(store, clock, BOB, CAROL)
        await _resolve(store, mark_delivered(delivered, now=clock()))
        await _resolve(store, mark_failed(failed, reason="Network timeout", now=clock()))

        assert [m.id for m in await queries.list_by_status(MessageStatus.DELIVERED)] == [delivered.id]
        assert [m.id for m in await queries.list_by_status(MessageStatus.FAILED)] == [failed.id]
        assert [m.id for m in await queries.list_by_status(MessageStatus.PENDING)] == [pending.id]
        assert await queries.count_by_status() == {
            MessageStatus.PENDING: 1,
            MessageStatus.DELIVERED: 1,
            MessageStatus.FAILED: 1,
        }

        stored = await queries.get_by_id(failed.id or "")
        assert stored is not None
        assert stored.failure_reason == "Network timeout"

    asyncio.run(_run())

import asyncio
import logging
from dataclasses import dataclass, field

import pytest

from sms_service.domain.errors import TransientQueueError
from sms_service.domain.models import (
    DispatchJob,
    JobDisposition,
    MessageStatus,
    ProcessResult,
    QueueDelivery,
)
from sms_service.domain.use_cases.submit import MessageProducer
from sms_service.queues.memory import InMemoryDispatchQueue
from sms_service.repositories.stub import InMemoryMessageStore
from sms_service.workers.handlers.deliver import process_job
from sms_service.workers.handlers.deps import WorkerDeps
from sms_service.workers.loop import WorkerLoop
from sms_service.workers.runner import (
    WorkerRuntimeSettings,
    WorkerRuntimeState,
    run_worker_pool_until_stopped,
    run_worker_until_stopped,
    worker_runtime_settings_from_env,
)
from tests.fakes import TrackingGateway, instant_gateway


async def _ack(delivery: QueueDelivery) -> ProcessResult:
    del delivery
    return ProcessResult(disposition=JobDisposition.ACK, detail="ok")


@pytest.mark.unit
def test_worker_runtime_settings_read_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKER_POLL_INTERVAL_MS", "50")
    monkeypatch.setenv("WORKER_IDLE_BACKOFF_MS", "100")
    monkeypatch.setenv("WORKER_ERROR_BACKOFF_MS", "150")
    monkeypatch.setenv("WORKER_CONCURRENCY", "4")

    settings = worker_runtime_settings_from_env()

    assert settings == WorkerRuntimeSettings(
        poll_interval_ms=50,
        idle_backoff_ms=100,
        error_backoff_ms=150,
        concurrency=4,
    )


@pytest.mark.unit
def test_worker_runtime_settings_fall_back_on_bad_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKER_POLL_INTERVAL_MS", "abc")
    monkeypatch.setenv("WORKER_IDLE_BACKOFF_MS", "0")
    monkeypatch.setenv("WORKER_ERROR_BACKOFF_MS", "-10")
    monkeypatch.setenv("WORKER_CONCURRENCY", "many")

    settings = worker_runtime_settings_from_env()

    assert settings == WorkerRuntimeSettings()


@pytest.mark.unit
def test_worker_loop_run_once_acks_processed_job() -> None:
    queue = InMemoryDispatchQueue()
    loop = WorkerLoop(role="worker-deliver", queue=queue, process=_ack)

    async def _run() -> bool:
        await queue.publish(DispatchJob(message_id="msg_1"))
        return await loop.run_once()

    assert asyncio.run(_run()) is True
    assert len(queue.acked) == 1
    assert loop.stats.acked_total == 1


@pytest.mark.unit
def test_worker_loop_run_once_reports_idle_queue() -> None:
    loop = WorkerLoop(role="worker-deliver", queue=InMemoryDispatchQueue(), process=_ack)

    assert asyncio.run(loop.run_once()) is False
    assert loop.stats.acked_total == 0


@pytest.mark.unit
def test_worker_loop_nacks_when_processing_crashes() -> None:
    async def _crash(delivery: QueueDelivery) -> ProcessResult:
        del delivery
        raise RuntimeError("boom")

    queue = InMemoryDispatchQueue()
    loop = WorkerLoop(role="worker-deliver", queue=queue, process=_crash)

    async def _run() -> None:
        await queue.publish(DispatchJob(message_id="msg_1"))
        assert await loop.run_once() is True
        redelivered = await queue.receive(consumer="worker-deliver")
        assert redelivered is not None
        assert redelivered.attempt == 2

    asyncio.run(_run())
    assert loop.stats.crashed_total == 1
    assert loop.stats.nacked_total == 1


@pytest.mark.unit
def test_worker_loop_honours_nack_disposition() -> None:
    async def _nack(delivery: QueueDelivery) -> ProcessResult:
        del delivery
        return ProcessResult(disposition=JobDisposition.NACK, detail="store down", error_code="store_unavailable")

    queue = InMemoryDispatchQueue()
    loop = WorkerLoop(role="worker-deliver", queue=queue, process=_nack)

    async def _run() -> None:
        await queue.publish(DispatchJob(message_id="msg_1"))
        await loop.run_once()

    asyncio.run(_run())
    assert len(queue.nacked) == 1
    assert queue.depth() == 1


@dataclass
class _FlakyLoop:
    calls: int = 0
    queue: InMemoryDispatchQueue = field(default_factory=InMemoryDispatchQueue)

    async def run_once(self, *, worker_id: str | None = None) -> bool:
        del worker_id
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("boom")
        return False


@pytest.mark.unit
def test_runner_survives_errors_and_continues() -> None:
    flaky_loop = _FlakyLoop()
    stop_event = asyncio.Event()
    settings = WorkerRuntimeSettings(poll_interval_ms=1, idle_backoff_ms=1, error_backoff_ms=1)
    state = WorkerRuntimeState()

    async def _run() -> None:
        task = asyncio.create_task(
            run_worker_until_stopped(
                worker_loop=flaky_loop,  # pyright: ignore[reportArgumentType]
                role="worker-deliver",
                run_id="run-1",
                stop_event=stop_event,
                settings=settings,
                logger=logging.getLogger("test"),
                state=state,
            )
        )
        await asyncio.sleep(0.02)
        stop_event.set()
        await task

    asyncio.run(_run())
    assert flaky_loop.calls >= 2
    assert state.started is True
    assert state.stopped is True
    assert state.ticks_total >= 2
    assert state.errors_total >= 1


@pytest.mark.unit
def test_runner_reclaims_expired_leases_before_tick() -> None:
    class _CountingQueue(InMemoryDispatchQueue):
        reclaim_calls: int = 0

        async def reclaim_expired(self) -> int:
            self.reclaim_calls += 1
            return await super().reclaim_expired()

    queue = _CountingQueue()
    loop = WorkerLoop(role="worker-deliver", queue=queue, process=_ack)
    stop_event = asyncio.Event()
    settings = WorkerRuntimeSettings(poll_interval_ms=1, idle_backoff_ms=1, error_backoff_ms=1)

    async def _run() -> None:
        task = asyncio.create_task(
            run_worker_until_stopped(
                worker_loop=loop,
                role="worker-deliver",
                run_id="run-reclaim",
                stop_event=stop_event,
                settings=settings,
                logger=logging.getLogger("test"),
            )
        )
        await asyncio.sleep(0.01)
        stop_event.set()
        await task

    asyncio.run(_run())
    assert queue.reclaim_calls >= 1


@pytest.mark.unit
def test_worker_pool_processes_jobs_in_parallel_lanes() -> None:
    store = InMemoryMessageStore()
    queue = InMemoryDispatchQueue()
    gateway = TrackingGateway(latency_seconds=0.05)
    deps = WorkerDeps(store=store, gateway=gateway)

    async def _process(delivery: QueueDelivery) -> ProcessResult:
        return await process_job(deps, delivery=delivery)

    loop = WorkerLoop(role="worker-deliver", queue=queue, process=_process)
    producer = MessageProducer(store=store, queue=queue)
    stop_event = asyncio.Event()
    settings = WorkerRuntimeSettings(poll_interval_ms=1, idle_backoff_ms=5, error_backoff_ms=5, concurrency=4)
    state = WorkerRuntimeState()

    async def _run() -> None:
        for index in range(8):
            await producer.accept(
                source_address="+15550001111",
                destination_address=f"+1555000{index:04d}",
                content=f"hello {index}",
            )
        task = asyncio.create_task(
            run_worker_pool_until_stopped(
                worker_loop=loop,
                role="worker-deliver",
                run_id="run-pool",
                stop_event=stop_event,
                settings=settings,
                logger=logging.getLogger("test"),
                state=state,
            )
        )
        for _ in range(200):
            if queue.depth() == 0:
                break
            await asyncio.sleep(0.01)
        stop_event.set()
        await task

    asyncio.run(_run())
    assert queue.depth() == 0
    assert gateway.calls == 8
    assert gateway.max_active >= 2
    assert len(store.updates) == 8
    assert state.stopped is True
    assert state.lanes_running == 0


@pytest.mark.unit
def test_runner_recovers_when_ack_fails_and_redelivery_is_a_no_op() -> None:
    class _AckFailsOnce(InMemoryDispatchQueue):
        ack_failures: int = 0

        async def ack(self, delivery: QueueDelivery) -> None:
            if self.ack_failures == 0:
                self.ack_failures += 1
                raise TransientQueueError("broker is unavailable")
            await super().ack(delivery)

    store = InMemoryMessageStore()
    queue = _AckFailsOnce(visibility_timeout_seconds=0.01)
    deps = WorkerDeps(store=store, gateway=instant_gateway(success_rate=1.0))

    async def _process(delivery: QueueDelivery) -> ProcessResult:
        return await process_job(deps, delivery=delivery)

    loop = WorkerLoop(role="worker-deliver", queue=queue, process=_process)
    stop_event = asyncio.Event()
    settings = WorkerRuntimeSettings(poll_interval_ms=1, idle_backoff_ms=5, error_backoff_ms=5)
    state = WorkerRuntimeState()

    async def _run() -> str:
        message = await MessageProducer(store=store, queue=queue).accept(
            source_address="+15550001111",
            destination_address="+15550002222",
            content="hello",
        )
        assert message.id is not None
        task = asyncio.create_task(
            run_worker_until_stopped(
                worker_loop=loop,
                role="worker-deliver",
                run_id="run-ack-failure",
                stop_event=stop_event,
                settings=settings,
                logger=logging.getLogger("test"),
                state=state,
            )
        )
        for _ in range(200):
            if queue.depth() == 0:
                break
            await asyncio.sleep(0.01)
        stop_event.set()
        await task
        return message.id

    message_id = asyncio.run(_run())
    stored = asyncio.run(store.get_by_id(message_id))

    assert queue.ack_failures == 1
    assert state.errors_total >= 1
    assert queue.depth() == 0
    assert len(queue.acked) == 1
    assert len(store.updates) == 1
    assert stored is not None
    assert stored.status == MessageStatus.DELIVERED

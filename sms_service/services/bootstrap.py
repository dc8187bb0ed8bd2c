from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import os

from sms_service.api.handlers.deps import ApiDeps
from sms_service.clients.gateway import SimulatedCarrierGateway, gateway_settings_from_env
from sms_service.config import env_int
from sms_service.domain.contracts import CarrierGateway, DispatchQueue, MessageStore
from sms_service.domain.use_cases.query import MessageQueryService
from sms_service.domain.use_cases.submit import MessageProducer
from sms_service.queues.memory import InMemoryDispatchQueue
from sms_service.queues.postgres import PostgresDispatchQueue
from sms_service.repositories.postgres import AsyncpgPoolManager, PostgresMessageStore
from sms_service.repositories.stub import InMemoryMessageStore
from sms_service.roles import RuntimeRole
from sms_service.workers.handlers.deps import WorkerDeps
from sms_service.workers.handlers.factory import build_process_handler
from sms_service.workers.loop import WorkerLoop


@dataclass
class RuntimeContainer:
    mode: str
    store: MessageStore
    queue: DispatchQueue
    gateway: CarrierGateway
    producer: MessageProducer
    queries: MessageQueryService
    api_deps: ApiDeps | None
    worker_loop: WorkerLoop | None
    on_startup: Callable[[], Awaitable[None]] | None
    on_shutdown: Callable[[], Awaitable[None]] | None


def build_runtime_container(role: RuntimeRole) -> RuntimeContainer:
    database_url = os.getenv("DATABASE_URL")
    if not database_url and role.name != "all":
        # An in-memory queue is private to this process; nothing else would read or fill it.
        raise ValueError(
            f"Role '{role.name}' needs DATABASE_URL: without Postgres the queue is in-memory "
            "and only role 'all' can both publish and consume it."
        )
    visibility_timeout_seconds = env_int("QUEUE_VISIBILITY_TIMEOUT_SECONDS", 30)
    on_startup: Callable[[], Awaitable[None]] | None = None
    on_shutdown: Callable[[], Awaitable[None]] | None = None
    store: MessageStore
    queue: DispatchQueue
    if database_url:
        pool_manager = AsyncpgPoolManager(dsn=database_url)
        store = PostgresMessageStore(pool_manager=pool_manager)
        queue = PostgresDispatchQueue(
            pool_manager=pool_manager,
            visibility_timeout_seconds=visibility_timeout_seconds,
        )
        on_startup = pool_manager.startup
        on_shutdown = pool_manager.shutdown
        mode = "postgres"
    else:
        store = InMemoryMessageStore()
        queue = InMemoryDispatchQueue(visibility_timeout_seconds=visibility_timeout_seconds)
        mode = "memory"

    gateway = SimulatedCarrierGateway(settings=gateway_settings_from_env())
    producer = MessageProducer(store=store, queue=queue)
    queries = MessageQueryService(store=store)

    api_deps: ApiDeps | None = None
    if role.serves_api:
        api_deps = ApiDeps(producer=producer, queries=queries)

    worker_loop: WorkerLoop | None = None
    if role.runs_worker:
        worker_deps = WorkerDeps(store=store, gateway=gateway)
        worker_loop = WorkerLoop(
            role=role.name,
            queue=queue,
            process=build_process_handler(role.name, worker_deps),
        )

    return RuntimeContainer(
        mode=mode,
        store=store,
        queue=queue,
        gateway=gateway,
        producer=producer,
        queries=queries,
        api_deps=api_deps,
        worker_loop=worker_loop,
        on_startup=on_startup,
        on_shutdown=on_shutdown,
    )

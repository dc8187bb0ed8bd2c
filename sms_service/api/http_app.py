from __future__ import annotations

from contextlib import asynccontextmanager
import asyncio
from collections.abc import Awaitable, Callable
import logging

from fastapi import FastAPI, HTTPException

from sms_service.api.errors import register_exception_handlers
from sms_service.api.handlers.deps import ApiDeps
from sms_service.api.handlers.messages import (
    get_message_handler,
    list_by_destination_handler,
    list_by_participant_handler,
    list_by_source_handler,
    message_stats_handler,
    send_message_handler,
)
from sms_service.api.schemas import (
    ErrorResponse,
    HealthResponse,
    MessageStatsResponse,
    MessageView,
    ProducerMetrics,
    ReadyResponse,
    SendMessageRequest,
    WorkerMetrics,
)
from sms_service.workers.loop import WorkerLoop
from sms_service.workers.runner import (
    WorkerRuntimeSettings,
    WorkerRuntimeState,
    run_worker_pool_until_stopped,
    worker_runtime_settings_from_env,
)


def build_app(
    role: str,
    run_id: str,
    worker_loop: WorkerLoop | None = None,
    worker_runtime_settings: WorkerRuntimeSettings | None = None,
    api_deps: ApiDeps | None = None,
    on_startup: Callable[[], Awaitable[None]] | None = None,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
    mode: str = "memory",
) -> FastAPI:
    logger = logging.getLogger("runtime")
    worker_state: WorkerRuntimeState | None = None
    worker_task: asyncio.Task[None] | None = None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal worker_task, worker_state
        del app
        stop_event: asyncio.Event | None = None

        logger.info(
            "role started",
            extra={"role": role, "service": role, "run_id": run_id},
        )

        if on_startup is not None:
            await on_startup()

        if worker_loop is not None:
            settings = worker_runtime_settings or worker_runtime_settings_from_env()
            worker_state = WorkerRuntimeState()
            stop_event = asyncio.Event()
            worker_task = asyncio.create_task(
                run_worker_pool_until_stopped(
                    worker_loop=worker_loop,
                    role=role,
                    run_id=run_id,
                    stop_event=stop_event,
                    settings=settings,
                    logger=logger,
                    state=worker_state,
                )
            )

        yield

        if stop_event is not None and worker_task is not None:
            stop_event.set()
            await worker_task

        if on_shutdown is not None:
            await on_shutdown()

        logger.info(
            "role stopped",
            extra={"role": role, "service": role, "run_id": run_id},
        )

    app = FastAPI(title="sms-service", version="0.1.0", lifespan=lifespan)
    register_exception_handlers(app)

    def _require_api_deps() -> ApiDeps:
        if api_deps is None:
            raise HTTPException(status_code=503, detail="api dependencies are not available")
        return api_deps

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", role=role, mode=mode)

    @app.get("/ready", response_model=ReadyResponse, tags=["System"])
    async def ready() -> ReadyResponse:
        worker_loop_enabled = worker_loop is not None
        worker_loop_ready = True
        state = worker_state or WorkerRuntimeState()
        if worker_loop_enabled:
            worker_loop_ready = (
                worker_state is not None
                and worker_state.started
                and worker_task is not None
                and not worker_task.done()
            )

        producer_metrics = None
        if api_deps is not None:
            producer_metrics = ProducerMetrics(
                accepted_total=api_deps.producer.stats.accepted_total,
                enqueue_failures_total=api_deps.producer.stats.enqueue_failures_total,
            )

        loop_stats = worker_loop.stats if worker_loop is not None else None
        return ReadyResponse(
            status="ready" if worker_loop_ready else "not_ready",
            role=role,
            mode=mode,
            worker_loop_enabled=worker_loop_enabled,
            worker_loop_ready=worker_loop_ready,
            worker_metrics=WorkerMetrics(
                started=state.started,
                stopped=state.stopped,
                ticks_total=state.ticks_total,
                jobs_total=state.jobs_total,
                idle_ticks_total=state.idle_ticks_total,
                errors_total=state.errors_total,
                acked_total=loop_stats.acked_total if loop_stats else 0,
                nacked_total=loop_stats.nacked_total if loop_stats else 0,
                crashed_total=loop_stats.crashed_total if loop_stats else 0,
            ),
            producer_metrics=producer_metrics,
        )

    @app.post(
        "/api/sms/send",
        status_code=201,
        response_model=MessageView,
        responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
        tags=["Messages"],
    )
    async def send_message(request: SendMessageRequest) -> MessageView:
        return await send_message_handler(request=request, api_deps=_require_api_deps())

    @app.get("/api/sms/stats", response_model=MessageStatsResponse, tags=["Messages"])
    async def message_stats() -> MessageStatsResponse:
        return await message_stats_handler(api_deps=_require_api_deps())

    @app.get(
        "/api/sms/phone/{phone_number}",
        response_model=list[MessageView],
        tags=["Messages"],
    )
    async def list_messages_by_phone(phone_number: str) -> list[MessageView]:
        return await list_by_participant_handler(phone_number=phone_number, api_deps=_require_api_deps())

    @app.get(
        "/api/sms/from/{source_number}",
        response_model=list[MessageView],
        tags=["Messages"],
    )
    async def list_messages_from(source_number: str) -> list[MessageView]:
        return await list_by_source_handler(source_number=source_number, api_deps=_require_api_deps())

    @app.get(
        "/api/sms/to/{destination_number}",
        response_model=list[MessageView],
        tags=["Messages"],
    )
    async def list_messages_to(destination_number: str) -> list[MessageView]:
        return await list_by_destination_handler(
            destination_number=destination_number,
            api_deps=_require_api_deps(),
        )

    @app.get(
        "/api/sms/{message_id}",
        response_model=MessageView,
        responses={404: {"model": ErrorResponse}},
        tags=["Messages"],
    )
    async def get_message(message_id: str) -> MessageView:
        return await get_message_handler(message_id=message_id, api_deps=_require_api_deps())

    return app

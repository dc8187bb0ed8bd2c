from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sms_service.config import env_int
from sms_service.workers.loop import WorkerLoop


@dataclass(frozen=True)
class WorkerRuntimeSettings:
    poll_interval_ms: int = 200
    idle_backoff_ms: int = 1000
    error_backoff_ms: int = 2000
    concurrency: int = 1


@dataclass
class WorkerRuntimeState:
    started: bool = False
    stopped: bool = False
    ticks_total: int = 0
    jobs_total: int = 0
    idle_ticks_total: int = 0
    errors_total: int = 0
    lanes_running: int = 0


def worker_runtime_settings_from_env() -> WorkerRuntimeSettings:
    return WorkerRuntimeSettings(
        poll_interval_ms=env_int("WORKER_POLL_INTERVAL_MS", 200),
        idle_backoff_ms=env_int("WORKER_IDLE_BACKOFF_MS", 1000),
        error_backoff_ms=env_int("WORKER_ERROR_BACKOFF_MS", 2000),
        concurrency=env_int("WORKER_CONCURRENCY", 1),
    )


async def run_worker_until_stopped(
    *,
    worker_loop: WorkerLoop,
    role: str,
    run_id: str,
    stop_event: asyncio.Event,
    settings: WorkerRuntimeSettings,
    logger: logging.Logger,
    state: WorkerRuntimeState | None = None,
    worker_id: str | None = None,
) -> None:
    worker = worker_id or role
    log_extra = {"role": role, "service": role, "run_id": run_id, "worker": worker}

    if state is not None:
        state.started = True
        state.lanes_running += 1

    logger.info("worker loop started", extra=log_extra)

    while not stop_event.is_set():
        delay_ms = settings.idle_backoff_ms
        try:
            await worker_loop.queue.reclaim_expired()
            did_work = await worker_loop.run_once(worker_id=worker)
            if state is not None:
                state.ticks_total += 1
                if did_work:
                    state.jobs_total += 1
                else:
                    state.idle_ticks_total += 1
            delay_ms = settings.poll_interval_ms if did_work else settings.idle_backoff_ms
            logger.debug("worker tick", extra={**log_extra, "did_work": str(did_work).lower()})
        except Exception:
            if state is not None:
                state.ticks_total += 1
                state.errors_total += 1
            delay_ms = settings.error_backoff_ms
            logger.exception("worker tick error", extra=log_extra)

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay_ms / 1000)
        except TimeoutError:
            continue

    logger.info("worker loop stopped", extra=log_extra)
    if state is not None:
        state.lanes_running -= 1
        if state.lanes_running == 0:
            state.stopped = True


async def run_worker_pool_until_stopped(
    *,
    worker_loop: WorkerLoop,
    role: str,
    run_id: str,
    stop_event: asyncio.Event,
    settings: WorkerRuntimeSettings,
    logger: logging.Logger,
    state: WorkerRuntimeState | None = None,
) -> None:
    """Run ``settings.concurrency`` independent lanes over one queue.

    Lanes share nothing but the queue and the store, so a slow gateway call in
    one lane never holds up jobs picked by another.
    """
    lanes = max(settings.concurrency, 1)
    await asyncio.gather(
        *(
            run_worker_until_stopped(
                worker_loop=worker_loop,
                role=role,
                run_id=run_id,
                stop_event=stop_event,
                settings=settings,
                logger=logger,
                state=state,
                worker_id=f"{role}-{index}" if lanes > 1 else role,
            )
            for index in range(lanes)
        )
    )

from __future__ import annotations

from sms_service.domain.models import ProcessResult, QueueDelivery
from sms_service.workers.handlers import deliver
from sms_service.workers.handlers.deps import WorkerDeps
from sms_service.workers.loop import ProcessHandler


def build_process_handler(role: str, deps: WorkerDeps) -> ProcessHandler:
    async def _deliver(delivery: QueueDelivery) -> ProcessResult:
        return await deliver.process_job(deps, delivery=delivery)

    handlers: dict[str, ProcessHandler] = {
        "worker-deliver": _deliver,
        "all": _deliver,
    }
    handler = handlers.get(role)
    if handler is None:
        raise ValueError(f"No worker handler for role '{role}'")
    return handler

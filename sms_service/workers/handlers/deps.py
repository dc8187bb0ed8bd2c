from __future__ import annotations

from dataclasses import dataclass

from sms_service.domain.clock import Clock, utc_now
from sms_service.domain.contracts import CarrierGateway, MessageStore


@dataclass(frozen=True)
class WorkerDeps:
    store: MessageStore
    gateway: CarrierGateway
    clock: Clock = utc_now

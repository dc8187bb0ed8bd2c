from __future__ import annotations

from dataclasses import dataclass

from sms_service.domain.use_cases.query import MessageQueryService
from sms_service.domain.use_cases.submit import MessageProducer


@dataclass(frozen=True)
class ApiDeps:
    producer: MessageProducer
    queries: MessageQueryService

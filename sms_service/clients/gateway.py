from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
import random

from sms_service.config import env_int, env_optional_int, env_probability
from sms_service.domain.models import GatewayOutcome, Message

CARRIER_ERRORS: tuple[str, ...] = (
    "Destination number not reachable",
    "Network timeout",
    "Invalid destination number",
    "Carrier rejected message",
    "Insufficient balance",
    "Message blocked by carrier",
)


@dataclass(frozen=True)
class GatewaySettings:
    latency_min_ms: int = 100
    latency_max_ms: int = 500
    success_rate: float = 0.8
    random_seed: int | None = None

    def __post_init__(self) -> None:
        if self.latency_min_ms < 0 or self.latency_max_ms < self.latency_min_ms:
            raise ValueError("gateway latency range must satisfy 0 <= min <= max")
        if not 0.0 <= self.success_rate <= 1.0:
            raise ValueError("gateway success rate must be within [0, 1]")


def gateway_settings_from_env() -> GatewaySettings:
    latency_min_ms = env_int("GATEWAY_LATENCY_MIN_MS", 100)
    latency_max_ms = env_int("GATEWAY_LATENCY_MAX_MS", 500)
    return GatewaySettings(
        latency_min_ms=latency_min_ms,
        latency_max_ms=max(latency_min_ms, latency_max_ms),
        success_rate=env_probability("GATEWAY_SUCCESS_RATE", 0.8),
        random_seed=env_optional_int("GATEWAY_RANDOM_SEED"),
    )


@dataclass
class SimulatedCarrierGateway:
    """Stands in for an SMS carrier: random round-trip delay, weighted random outcome."""

    settings: GatewaySettings = field(default_factory=GatewaySettings)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    rng: random.Random | None = None
    sent: list[str] = field(default_factory=list)
    _rng: random.Random = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._rng = self.rng if self.rng is not None else random.Random(self.settings.random_seed)

    async def send(self, message: Message) -> GatewayOutcome:
        latency_ms = self._rng.randint(self.settings.latency_min_ms, self.settings.latency_max_ms)
        await self.sleep(latency_ms / 1000)

        if message.id is not None:
            self.sent.append(message.id)
        if self._rng.random() < self.settings.success_rate:
            return GatewayOutcome(delivered=True, latency_ms=latency_ms)
        return GatewayOutcome(
            delivered=False,
            latency_ms=latency_ms,
            failure_reason=self._rng.choice(CARRIER_ERRORS),
        )

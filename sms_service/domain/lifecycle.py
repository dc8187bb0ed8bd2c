from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from sms_service.domain.errors import DomainInvariantError, InvalidTransitionError
from sms_service.domain.models import Message, MessageStatus


ALLOWED_TRANSITIONS: dict[MessageStatus, set[MessageStatus]] = {
    MessageStatus.PENDING: {MessageStatus.DELIVERED, MessageStatus.FAILED},
    MessageStatus.DELIVERED: set(),
    MessageStatus.FAILED: set(),
}

TERMINAL_STATUSES: frozenset[MessageStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

_MIN_TICK = timedelta(microseconds=1)


def is_terminal(status: MessageStatus) -> bool:
    return status in TERMINAL_STATUSES


def new_pending_message(
    *,
    source_address: str,
    destination_address: str,
    content: str,
    now: datetime,
) -> Message:
    """Build an unsaved message; the store assigns ``id`` on create."""
    return Message(
        id=None,
        source_address=source_address,
        destination_address=destination_address,
        content=content,
        status=MessageStatus.PENDING,
        created_at=now,
        updated_at=now,
    )


def mark_delivered(message: Message, *, now: datetime) -> Message:
    return _transition(message, to_status=MessageStatus.DELIVERED, failure_reason=None, now=now)


def mark_failed(message: Message, *, reason: str, now: datetime) -> Message:
    if not reason:
        raise DomainInvariantError("failure reason is required for FAILED status")
    return _transition(message, to_status=MessageStatus.FAILED, failure_reason=reason, now=now)


def check_invariants(message: Message) -> None:
    if message.status == MessageStatus.FAILED and not message.failure_reason:
        raise DomainInvariantError(f"message {message.id} is FAILED without failure reason")
    if message.status != MessageStatus.FAILED and message.failure_reason is not None:
        raise DomainInvariantError(f"message {message.id} has failure reason in status {message.status}")
    if message.updated_at < message.created_at:
        raise DomainInvariantError(f"message {message.id} updated_at precedes created_at")


def _transition(
    message: Message,
    *,
    to_status: MessageStatus,
    failure_reason: str | None,
    now: datetime,
) -> Message:
    allowed = ALLOWED_TRANSITIONS.get(message.status, set())
    if to_status not in allowed:
        raise InvalidTransitionError(f"invalid transition: {message.status} -> {to_status}")

    transitioned = replace(
        message,
        status=to_status,
        failure_reason=failure_reason,
        updated_at=_next_updated_at(message.updated_at, now),
    )
    check_invariants(transitioned)
    return transitioned


def _next_updated_at(previous: datetime, now: datetime) -> datetime:
    # Clock may not advance between create and resolve; keep updated_at strictly increasing.
    if now > previous:
        return now
    return previous + _MIN_TICK

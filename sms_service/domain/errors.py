from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sms_service.domain.models import FieldError, Message


class DomainError(Exception):
    pass


class DomainValidationError(DomainError):
    def __init__(self, errors: list[FieldError]) -> None:
        super().__init__("; ".join(error.message for error in errors) or "validation failed")
        self.errors = errors


class DomainInvariantError(DomainError):
    pass


class InvalidTransitionError(DomainInvariantError):
    pass


class MessageNotFoundError(DomainError):
    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message not found with id: {message_id}")
        self.message_id = message_id


class DomainDependencyError(DomainError):
    pass


class StoreUnavailableError(DomainDependencyError):
    pass


class TransientQueueError(DomainDependencyError):
    pass


class DispatchEnqueueFailedError(DomainDependencyError):
    """Message is durably PENDING but no dispatch job was published for it."""

    def __init__(self, message: Message, cause: Exception | None = None) -> None:
        super().__init__(f"dispatch enqueue failed for message {message.id}")
        self.message = message
        self.cause = cause

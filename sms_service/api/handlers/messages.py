from __future__ import annotations

from sms_service.api.handlers.deps import ApiDeps
from sms_service.api.schemas import MessageStatsResponse, MessageView, SendMessageRequest
from sms_service.domain.errors import DomainValidationError, MessageNotFoundError
from sms_service.domain.models import Message
from sms_service.domain.validation import validate_send_request

COMPONENT_ID = "api.messages"


async def send_message_handler(*, request: SendMessageRequest, api_deps: ApiDeps) -> MessageView:
    errors = validate_send_request(
        source_number=request.source_number,
        destination_number=request.destination_number,
        content=request.content,
    )
    if errors:
        raise DomainValidationError(errors)

    message = await api_deps.producer.accept(
        source_address=request.source_number or "",
        destination_address=request.destination_number or "",
        content=request.content or "",
    )
    return MessageView.from_message(message)


async def get_message_handler(*, message_id: str, api_deps: ApiDeps) -> MessageView:
    message = await api_deps.queries.get_by_id(message_id)
    if message is None:
        raise MessageNotFoundError(message_id)
    return MessageView.from_message(message)


async def list_by_participant_handler(*, phone_number: str, api_deps: ApiDeps) -> list[MessageView]:
    return _views(await api_deps.queries.list_by_participant(phone_number))


async def list_by_source_handler(*, source_number: str, api_deps: ApiDeps) -> list[MessageView]:
    return _views(await api_deps.queries.list_by_source(source_number))


async def list_by_destination_handler(*, destination_number: str, api_deps: ApiDeps) -> list[MessageView]:
    return _views(await api_deps.queries.list_by_destination(destination_number))


async def message_stats_handler(*, api_deps: ApiDeps) -> MessageStatsResponse:
    counts = await api_deps.queries.count_by_status()
    return MessageStatsResponse(total=sum(counts.values()), by_status=counts)


def _views(messages: list[Message]) -> list[MessageView]:
    return [MessageView.from_message(message) for message in messages]

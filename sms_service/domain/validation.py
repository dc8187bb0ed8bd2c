from __future__ import annotations

import re

from sms_service.domain.models import FieldError

# Optional "+", no leading zero, 7-15 digits in total (E.164).
PHONE_NUMBER_PATTERN = re.compile(r"^\+?[1-9]\d{6,14}$")
MAX_CONTENT_LENGTH = 160


def is_valid_phone_number(value: str) -> bool:
    return PHONE_NUMBER_PATTERN.fullmatch(value) is not None


def validate_send_request(
    *,
    source_number: str | None,
    destination_number: str | None,
    content: str | None,
) -> list[FieldError]:
    """Return every problem with a send request; an empty list means valid."""
    errors: list[FieldError] = []
    errors.extend(_validate_number("source_number", source_number, "Source number is required"))
    errors.extend(_validate_number("destination_number", destination_number, "Destination number is required"))

    if content is None or not content.strip():
        errors.append(FieldError(field="content", message="Message content is required"))
    elif len(content) > MAX_CONTENT_LENGTH:
        errors.append(
            FieldError(
                field="content",
                message=f"Message content cannot exceed {MAX_CONTENT_LENGTH} characters",
            )
        )
    return errors


def _validate_number(field: str, value: str | None, required_message: str) -> list[FieldError]:
    if value is None or not value.strip():
        return [FieldError(field=field, message=required_message)]
    if not is_valid_phone_number(value):
        return [FieldError(field=field, message="Invalid phone number format")]
    return []

import pytest

from sms_service.domain.error_taxonomy import (
    classify_error,
    disposition_for_error,
    is_canonical_error_code,
    resolve_error_code,
)
from sms_service.domain.models import JobDisposition


@pytest.mark.unit
def test_canonical_error_codes_are_enforced() -> None:
    assert is_canonical_error_code("store_unavailable") is True
    assert is_canonical_error_code("unknown_error") is False


@pytest.mark.unit
def test_unknown_codes_normalize_to_internal_error() -> None:
    assert resolve_error_code("job_payload_invalid") == "job_payload_invalid"
    assert resolve_error_code("disk_on_fire") == "internal_error"


@pytest.mark.unit
def test_retry_classification_distinguishes_terminal_and_recoverable() -> None:
    assert classify_error("store_unavailable") == "recoverable"
    assert classify_error("queue_unavailable") == "recoverable"
    assert classify_error("job_payload_invalid") == "terminal"
    assert classify_error("message_not_found") == "terminal"


@pytest.mark.unit
def test_recoverable_errors_leave_job_for_redelivery() -> None:
    assert disposition_for_error("store_unavailable") == JobDisposition.NACK
    assert disposition_for_error("something_unexpected") == JobDisposition.NACK
    assert disposition_for_error("job_payload_invalid") == JobDisposition.ACK

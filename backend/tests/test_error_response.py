import logging
import pytest
from fastapi import HTTPException

from app.utils.errors import (
    BookingAlreadyConfirmed,
    InvalidTransition,
    NothingToInvoice,
    PersistenceError,
    ValidationFailed,
    error_response,
)


def test_error_response_logs(caplog):
    caplog.set_level(logging.ERROR, logger="app.utils.errors")
    with pytest.raises(HTTPException):
        raise error_response("Invalid", {"field": "bad"})
    assert any(
        "Invalid" in r.getMessage() and "'field': 'bad'" in r.getMessage()
        for r in caplog.records
    )


def test_service_errors_carry_kind_and_status():
    err = ValidationFailed.for_field("startTime", "must be HH:MM")
    assert err.to_dict() == {
        "kind": "validation",
        "message": "Invalid startTime: must be HH:MM",
        "field_errors": {"startTime": "must be HH:MM"},
    }
    assert err.status_code == 422
    assert isinstance(BookingAlreadyConfirmed("taken"), InvalidTransition)
    assert BookingAlreadyConfirmed("taken").status_code == 409
    assert NothingToInvoice().field_errors == {}
    assert PersistenceError("write failed").status_code == 503

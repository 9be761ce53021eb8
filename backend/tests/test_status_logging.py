import logging

from app.core.observability import setup_logging
from app.models import BookingStatus
from app.utils.status_logger import log_status_change


def test_status_change_is_logged_with_context(caplog):
    caplog.set_level(logging.INFO, logger="app.utils.status_logger")
    log_status_change("booking", "b1", BookingStatus.OFFERED, BookingStatus.CONFIRMED, interpreter_id="interp-ana")
    record = caplog.records[-1]
    assert record.getMessage() == "booking id=b1 status changed from OFFERED to CONFIRMED"
    assert record.old_status == "OFFERED"
    assert record.new_status == "CONFIRMED"
    assert record.interpreter_id == "interp-ana"


def test_unchanged_status_is_not_logged(caplog):
    caplog.set_level(logging.INFO, logger="app.utils.status_logger")
    log_status_change("timesheet", "t1", "APPROVED", "APPROVED")
    assert caplog.records == []


def test_setup_logging_uses_json_and_env_level(monkeypatch):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    monkeypatch.setenv("LOG_LEVEL", "warning")
    monkeypatch.setenv("DISABLE_ACCESS_LOG", "1")
    try:
        setup_logging()
        assert root.level == logging.WARNING
        assert type(root.handlers[0].formatter).__name__ == "JsonFormatter"
        assert logging.getLogger("uvicorn.access").disabled
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)

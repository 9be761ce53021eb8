import datetime as dt
from typing import Optional

from pydantic import Field, ValidationInfo, field_validator

from ..models.timesheet import TimesheetStatus
from .base import DocumentSchema


class TimesheetCreate(DocumentSchema):
    booking_id: str = Field(min_length=1)
    interpreter_id: Optional[str] = None
    client_id: Optional[str] = None
    actual_start: dt.datetime
    actual_end: dt.datetime
    break_duration_minutes: int = 0
    travel_duration_minutes: Optional[int] = None
    supporting_document_url: Optional[str] = None

    @field_validator("actual_end")
    def same_clock_as_start(cls, v: dt.datetime, info: ValidationInfo) -> dt.datetime:
        start = info.data.get("actual_start")
        if start is not None and (start.tzinfo is None) != (v.tzinfo is None):
            raise ValueError("actualStart and actualEnd must both carry a UTC offset, or neither")
        return v


class Timesheet(DocumentSchema):
    id: str
    booking_id: str
    client_id: Optional[str] = None
    interpreter_id: str
    actual_start: dt.datetime
    actual_end: dt.datetime
    break_duration_minutes: int = 0
    travel_duration_minutes: Optional[int] = None
    # Zero until approval computes them
    units_billable_to_client: float = 0
    units_payable_to_interpreter: float = 0
    client_amount_calculated: float = 0
    interpreter_amount_calculated: float = 0
    total_client_amount: float = 0
    total_interpreter_amount: float = 0
    client_rate: Optional[float] = None
    interpreter_rate: Optional[float] = None
    admin_approved: bool = False
    admin_approved_at: Optional[dt.datetime] = None
    ready_for_client_invoice: bool = False
    ready_for_interpreter_invoice: bool = False
    status: TimesheetStatus = TimesheetStatus.SUBMITTED
    submitted_at: Optional[dt.datetime] = None
    supporting_document_url: Optional[str] = None
    client_invoice_id: Optional[str] = None
    interpreter_invoice_id: Optional[str] = None
    rejection_reason: Optional[str] = None


class TimesheetReject(DocumentSchema):
    reason: Optional[str] = None

import datetime as dt
from typing import List, Optional

from pydantic import Field, model_validator

from ..models.invoice import ClientInvoiceStatus, InterpreterInvoiceStatus, InvoiceModel
from ..services.billing_units import line_total, quantize
from .base import DocumentSchema


class InvoiceLineItem(DocumentSchema):
    id: Optional[str] = None
    invoice_id: Optional[str] = None
    timesheet_id: Optional[str] = None
    booking_id: Optional[str] = None
    description: str
    units: float
    rate: float
    total: float

    @model_validator(mode="after")
    def total_matches_units_times_rate(self) -> "InvoiceLineItem":
        if quantize(self.total) != quantize(line_total(self.units, self.rate)):
            raise ValueError("line total must equal units * rate")
        return self


def _check_reconciles(total_amount: float, items: List[InvoiceLineItem]) -> None:
    # Summaries are listed without their lines; only check loaded invoices.
    if items and quantize(sum(quantize(i.total) for i in items)) != quantize(total_amount):
        raise ValueError("totalAmount must equal the sum of line totals")


class ClientInvoice(DocumentSchema):
    id: str
    client_id: str
    client_name: Optional[str] = None
    invoice_number: str
    reference: Optional[str] = None
    issue_date: dt.date
    due_date: dt.date
    period_start: Optional[dt.date] = None
    period_end: Optional[dt.date] = None
    status: ClientInvoiceStatus = ClientInvoiceStatus.DRAFT
    total_amount: float
    currency: str = "GBP"
    timesheet_ids: List[str] = Field(default_factory=list)
    items: List[InvoiceLineItem] = Field(default_factory=list)

    @model_validator(mode="after")
    def totals_reconcile(self) -> "ClientInvoice":
        _check_reconciles(self.total_amount, self.items)
        return self


class InterpreterInvoice(DocumentSchema):
    id: str
    interpreter_id: str
    interpreter_name: Optional[str] = None
    invoice_number: Optional[str] = None
    issue_date: dt.date
    status: InterpreterInvoiceStatus = InterpreterInvoiceStatus.SUBMITTED
    total_amount: float
    currency: str = "GBP"
    model: InvoiceModel = InvoiceModel.UPLOAD
    external_invoice_reference: Optional[str] = None
    uploaded_pdf_url: Optional[str] = None
    timesheet_ids: List[str] = Field(default_factory=list)
    items: List[InvoiceLineItem] = Field(default_factory=list)

    @model_validator(mode="after")
    def totals_reconcile(self) -> "InterpreterInvoice":
        _check_reconciles(self.total_amount, self.items)
        return self


class ClientInvoiceGenerate(DocumentSchema):
    client_id: str = Field(min_length=1)
    period_start: dt.date
    period_end: dt.date


class InterpreterInvoiceUpload(DocumentSchema):
    interpreter_id: Optional[str] = None
    timesheet_ids: List[str] = Field(default_factory=list)
    reference: str = ""
    amount: float
    uploaded_pdf_url: Optional[str] = None


class SelfBillingGenerate(DocumentSchema):
    interpreter_id: Optional[str] = None


class ClientInvoiceStatusUpdate(DocumentSchema):
    status: ClientInvoiceStatus


class InterpreterInvoiceStatusUpdate(DocumentSchema):
    status: InterpreterInvoiceStatus


class BillingStats(DocumentSchema):
    pending_client_invoices: int
    pending_client_amount: float
    pending_interpreter_invoices: int
    pending_timesheets: int

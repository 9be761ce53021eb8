from .base import DocumentSchema
from .booking import (
    GuestContact,
    BookingBase,
    BookingCreate,
    GuestBookingCreate,
    BookingUpdate,
    Booking,
    BookingStatusUpdate,
    AssignInterpreter,
    LinkClient,
)
from .assignment import Assignment, OfferCreate, OfferBroadcast, ConflictQuery
from .timesheet import TimesheetCreate, Timesheet, TimesheetReject
from .invoice import (
    InvoiceLineItem,
    ClientInvoice,
    InterpreterInvoice,
    ClientInvoiceGenerate,
    InterpreterInvoiceUpload,
    SelfBillingGenerate,
    ClientInvoiceStatusUpdate,
    InterpreterInvoiceStatusUpdate,
    BillingStats,
)
from .rate import Rate
from .user import Actor, Client, Interpreter
from .system import SystemSettings, GeneralSettings, FinanceSettings, OperationsSettings, ConnectionStatus

from .document import Document, Collections
from .booking import ServiceType, LocationType, GenderPreference
from .booking_status import BookingStatus
from .assignment import AssignmentStatus
from .timesheet import TimesheetStatus
from .invoice import ClientInvoiceStatus, InterpreterInvoiceStatus, InvoiceModel
from .rate import RateType, UnitType
from .user import UserRole

__all__ = [
    "Document",
    "Collections",
    "ServiceType",
    "LocationType",
    "GenderPreference",
    "BookingStatus",
    "AssignmentStatus",
    "TimesheetStatus",
    "ClientInvoiceStatus",
    "InterpreterInvoiceStatus",
    "InvoiceModel",
    "RateType",
    "UnitType",
    "UserRole",
]

from .errors import (
    error_response,
    ServiceError,
    ValidationFailed,
    InvalidTransition,
    BookingAlreadyConfirmed,
    ScheduleConflict,
    NothingToInvoice,
    PermissionDenied,
    PersistenceError,
    field_errors_from_pydantic,
)
from .status_logger import log_status_change

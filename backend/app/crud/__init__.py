from .persistence import PersistenceAdapter, get_persistence, new_id, utcnow_iso
from .document_store import DocumentStore, InMemoryDocumentStore, SqlDocumentStore
from .crud_booking import BookingManager
from .crud_assignment import AssignmentEngine
from .crud_timesheet import TimesheetManager
from .crud_invoice import InvoiceGenerator
from . import crud_interpreter
from . import crud_rate
from . import crud_system

# Managers are cheap wrappers around an adapter; build one per request
# e.g. `crud.BookingManager(adapter).get(booking_id)`

from sqlalchemy import Column, Integer, String, JSON, PrimaryKeyConstraint

from .base import BaseModel


class Document(BaseModel):
    """One record of a logical collection in the remote document store.

    ``version`` increments on every write and backs compare-and-set updates.
    """

    __tablename__ = "documents"
    __table_args__ = (PrimaryKeyConstraint("collection", "doc_id"),)

    collection = Column(String(64), nullable=False, index=True)
    doc_id = Column(String(64), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)


class Collections:
    """Names of the logical collections kept in the document store."""

    BOOKINGS = "bookings"
    ASSIGNMENTS = "assignments"
    TIMESHEETS = "timesheets"
    CLIENT_INVOICES = "clientInvoices"
    CLIENT_INVOICE_LINES = "clientInvoiceLines"
    INTERPRETER_INVOICES = "interpreterInvoices"
    INTERPRETER_INVOICE_LINES = "interpreterInvoiceLines"
    USERS = "users"
    CLIENTS = "clients"
    INTERPRETERS = "interpreters"
    RATES = "rates"
    SYSTEM = "system"

    SETTINGS_DOC = "settings"
    PING_DOC = "ping"

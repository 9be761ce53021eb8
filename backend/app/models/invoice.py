import enum


class ClientInvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class InterpreterInvoiceStatus(str, enum.Enum):
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"


class InvoiceModel(str, enum.Enum):
    """How an interpreter invoice came to exist."""
    UPLOAD = "UPLOAD"
    SELF_BILLING = "SELF_BILLING"


CLIENT_INVOICE_TRANSITIONS: dict[ClientInvoiceStatus, frozenset[ClientInvoiceStatus]] = {
    ClientInvoiceStatus.DRAFT: frozenset({ClientInvoiceStatus.SENT, ClientInvoiceStatus.CANCELLED}),
    ClientInvoiceStatus.SENT: frozenset({ClientInvoiceStatus.PAID, ClientInvoiceStatus.CANCELLED}),
    ClientInvoiceStatus.PAID: frozenset(),
    ClientInvoiceStatus.CANCELLED: frozenset(),
}

INTERPRETER_INVOICE_TRANSITIONS: dict[InterpreterInvoiceStatus, frozenset[InterpreterInvoiceStatus]] = {
    InterpreterInvoiceStatus.SUBMITTED: frozenset({
        InterpreterInvoiceStatus.APPROVED,
        InterpreterInvoiceStatus.REJECTED,
    }),
    InterpreterInvoiceStatus.APPROVED: frozenset({InterpreterInvoiceStatus.PAID}),
    InterpreterInvoiceStatus.PAID: frozenset(),
    InterpreterInvoiceStatus.REJECTED: frozenset(),
}

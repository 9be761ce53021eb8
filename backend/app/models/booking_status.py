import enum


class BookingStatus(str, enum.Enum):
    """Central booking status enumeration used across the application."""
    REQUESTED = "REQUESTED"
    SEARCHING = "SEARCHING"
    OFFERED = "OFFERED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    INVOICED = "INVOICED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.PAID})

# Statuses in which a booking must carry an interpreter, and only these.
STAFFED_STATUSES = frozenset({
    BookingStatus.CONFIRMED,
    BookingStatus.COMPLETED,
    BookingStatus.INVOICED,
    BookingStatus.PAID,
})

# Still looking for an interpreter: offers may be created or accepted.
OPEN_STATUSES = frozenset({
    BookingStatus.REQUESTED,
    BookingStatus.SEARCHING,
    BookingStatus.OFFERED,
})

# A client may only withdraw a request before it is staffed.
CLIENT_CANCELLABLE_STATUSES = OPEN_STATUSES

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.REQUESTED: frozenset({
        BookingStatus.SEARCHING,
        BookingStatus.OFFERED,
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.SEARCHING: frozenset({
        BookingStatus.OFFERED,
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    }),
    # OFFERED -> SEARCHING happens when the last open offer is declined
    BookingStatus.OFFERED: frozenset({
        BookingStatus.SEARCHING,
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset({BookingStatus.INVOICED, BookingStatus.CANCELLED}),
    BookingStatus.INVOICED: frozenset({BookingStatus.PAID, BookingStatus.CANCELLED}),
    BookingStatus.PAID: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())

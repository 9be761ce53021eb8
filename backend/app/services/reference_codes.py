import secrets


def guest_booking_ref(prefix: str) -> str:
    """Short human-readable reference handed to guests, e.g. ``LL-4821``."""
    return f"{prefix}-{1000 + secrets.randbelow(9000)}"


def format_invoice_number(prefix: str, sequence: int) -> str:
    return f"{prefix}-{sequence:05d}"

from typing import Dict, Optional
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


def error_response(
    message: str,
    field_errors: Dict[str, str],
    code: int = status.HTTP_422_UNPROCESSABLE_ENTITY,
) -> HTTPException:
    """Return an HTTPException with a consistent structure and log details."""
    logger.error("%s %s", message, field_errors)
    detail = {"message": message, "field_errors": field_errors}
    return HTTPException(status_code=code, detail=detail)


class ServiceError(Exception):
    """Failure reported by the booking/billing core.

    Every instance carries a machine-readable ``kind`` plus a human-readable
    ``message``; ``field_errors`` names offending input fields when known.
    """

    kind = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.field_errors = dict(field_errors or {})

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "field_errors": self.field_errors}


class ValidationFailed(ServiceError):
    kind = "validation"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    @classmethod
    def for_field(cls, field: str, problem: str) -> "ValidationFailed":
        return cls(f"Invalid {field}: {problem}", {field: problem})


class InvalidTransition(ServiceError):
    kind = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT


class BookingAlreadyConfirmed(InvalidTransition):
    kind = "already_confirmed"


class ScheduleConflict(ServiceError):
    kind = "schedule_conflict"
    status_code = status.HTTP_409_CONFLICT


class NothingToInvoice(ServiceError):
    kind = "nothing_to_invoice"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "No eligible timesheets found for this period."):
        super().__init__(message)


class PermissionDenied(ServiceError):
    kind = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN


class PersistenceError(ServiceError):
    """Both the remote store and the local mirror rejected an operation."""

    kind = "persistence"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def field_errors_from_pydantic(exc) -> Dict[str, str]:
    """Flatten a pydantic ``ValidationError`` into ``{field: message}``."""
    out: Dict[str, str] = {}
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "payload"
        out.setdefault(loc, err.get("msg", "invalid"))
    return out

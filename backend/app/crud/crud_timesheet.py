import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from .. import models, schemas
from ..models.booking import ServiceType
from ..models.booking_status import BookingStatus
from ..models.rate import RateType
from ..models.timesheet import TimesheetStatus
from ..models.user import UserRole
from ..services.billing_units import compute_timesheet_amounts
from ..utils.errors import InvalidTransition, PermissionDenied, ValidationFailed, field_errors_from_pydantic
from ..utils.status_logger import log_status_change
from .crud_rate import get_rate
from .persistence import PersistenceAdapter, utcnow_iso

logger = logging.getLogger(__name__)

TIMESHEETS = models.Collections.TIMESHEETS
BOOKINGS = models.Collections.BOOKINGS

# Bookings a timesheet may be recorded against
TIMESHEET_BOOKING_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.COMPLETED})
# Timesheets whose amounts are final and may be invoiced
APPROVED_STATUSES = [TimesheetStatus.APPROVED.value, TimesheetStatus.INVOICED.value]

ZEROED_AMOUNTS = {
    "unitsBillableToClient": 0,
    "unitsPayableToInterpreter": 0,
    "clientAmountCalculated": 0,
    "interpreterAmountCalculated": 0,
    "totalClientAmount": 0,
    "totalInterpreterAmount": 0,
}


class TimesheetManager:
    def __init__(self, adapter: PersistenceAdapter):
        self.adapter = adapter

    async def get(self, timesheet_id: str) -> Optional[schemas.Timesheet]:
        doc = await self.adapter.fetch_one(TIMESHEETS, timesheet_id)
        return schemas.Timesheet.from_document(doc) if doc else None

    async def submit(
        self,
        data: Union[schemas.TimesheetCreate, Mapping[str, Any]],
        actor: Optional[schemas.Actor] = None,
    ) -> schemas.Timesheet:
        """Record actual worked time for a booking as a SUBMITTED, unapproved timesheet."""
        if not isinstance(data, schemas.TimesheetCreate):
            try:
                data = schemas.TimesheetCreate.model_validate(dict(data))
            except ValidationError as exc:
                errors = field_errors_from_pydantic(exc)
                field = next(iter(errors))
                raise ValidationFailed(f"Invalid {field}: {errors[field]}", errors) from exc

        if data.actual_end <= data.actual_start:
            raise ValidationFailed.for_field("actualEnd", "must be after actualStart")
        if data.break_duration_minutes < 0:
            raise ValidationFailed.for_field("breakDurationMinutes", "must not be negative")

        booking_doc = await self.adapter.fetch_one(BOOKINGS, data.booking_id)
        if booking_doc is None:
            raise ValidationFailed.for_field("bookingId", "Booking not found")
        booking = schemas.Booking.from_document(booking_doc)
        if booking.status not in TIMESHEET_BOOKING_STATUSES:
            raise InvalidTransition(
                f"Cannot submit a timesheet for a booking that is {booking.status.value}",
                {"bookingId": booking.status.value},
            )

        interpreter_id = data.interpreter_id or booking.interpreter_id
        if actor is not None and actor.role == UserRole.INTERPRETER:
            interpreter_id = actor.party_id
        elif actor is not None and actor.role == UserRole.CLIENT:
            raise PermissionDenied("Clients cannot submit timesheets")
        if interpreter_id != booking.interpreter_id:
            raise PermissionDenied("Only the booked interpreter can submit a timesheet")

        live = await self.adapter.fetch_collection(
            TIMESHEETS,
            [("bookingId", "==", booking.id), ("status", "!=", TimesheetStatus.REJECTED.value)],
        )
        if live:
            raise InvalidTransition(
                "A timesheet has already been submitted for this booking",
                {"bookingId": "duplicate"},
            )

        doc = data.to_document()
        doc.update(ZEROED_AMOUNTS)
        doc.update({
            "interpreterId": interpreter_id,
            "clientId": booking.client_id,
            "status": TimesheetStatus.SUBMITTED.value,
            "adminApproved": False,
            "adminApprovedAt": None,
            "readyForClientInvoice": False,
            "readyForInterpreterInvoice": False,
            "submittedAt": utcnow_iso(),
            "clientInvoiceId": None,
            "interpreterInvoiceId": None,
        })
        timesheet_id = await self.adapter.write(TIMESHEETS, None, doc)
        logger.info("Timesheet %s submitted for booking %s", timesheet_id, booking.id)
        return schemas.Timesheet.from_document({**doc, "id": timesheet_id})

    async def list_pending_approval(self) -> List[schemas.Timesheet]:
        docs = await self.adapter.fetch_collection(
            TIMESHEETS,
            [("status", "==", TimesheetStatus.SUBMITTED.value), ("adminApproved", "==", False)],
            ("submittedAt", False),
        )
        return [schemas.Timesheet.from_document(d) for d in docs]

    async def list_for_interpreter(self, interpreter_id: str) -> List[schemas.Timesheet]:
        docs = await self.adapter.fetch_collection(
            TIMESHEETS, [("interpreterId", "==", interpreter_id)], ("submittedAt", True)
        )
        return [schemas.Timesheet.from_document(d) for d in docs]

    async def list_all(self, status: Optional[TimesheetStatus] = None) -> List[schemas.Timesheet]:
        filters = [("status", "==", status.value)] if status else []
        docs = await self.adapter.fetch_collection(TIMESHEETS, filters, ("submittedAt", True))
        return [schemas.Timesheet.from_document(d) for d in docs]

    async def list_uninvoiced_for_interpreter(self, interpreter_id: str) -> List[schemas.Timesheet]:
        """Approved timesheets not yet on any interpreter invoice."""
        docs = await self.adapter.fetch_collection(
            TIMESHEETS,
            [
                ("interpreterId", "==", interpreter_id),
                ("adminApproved", "==", True),
                ("status", "in", APPROVED_STATUSES),
                ("interpreterInvoiceId", "==", None),
            ],
            ("actualStart", False),
        )
        return [schemas.Timesheet.from_document(d) for d in docs]

    async def approve(self, timesheet_id: str) -> Optional[schemas.Timesheet]:
        """Approve a submitted timesheet and compute its billable and payable amounts.

        Units are worked hours (elapsed minus break) with each rate's
        ``minimumUnits`` floor; amounts are units times the rate.
        """
        timesheet = await self.get(timesheet_id)
        if timesheet is None:
            return None
        if timesheet.status != TimesheetStatus.SUBMITTED or timesheet.admin_approved:
            raise InvalidTransition(
                f"Timesheet is {timesheet.status.value} and cannot be approved",
                {"status": timesheet.status.value},
            )
        booking = await self.adapter.fetch_one(BOOKINGS, timesheet.booking_id)
        service_type = ServiceType((booking or {}).get("serviceType") or ServiceType.FACE_TO_FACE.value)
        client_rate = await get_rate(self.adapter, RateType.CLIENT, service_type)
        interpreter_rate = await get_rate(self.adapter, RateType.INTERPRETER, service_type)

        amounts = compute_timesheet_amounts(
            timesheet.actual_start,
            timesheet.actual_end,
            timesheet.break_duration_minutes,
            client_rate.amount_per_unit,
            client_rate.minimum_units,
            interpreter_rate.amount_per_unit,
            interpreter_rate.minimum_units,
        )
        patch: Dict[str, Any] = {
            "unitsBillableToClient": amounts.units_billable_to_client,
            "unitsPayableToInterpreter": amounts.units_payable_to_interpreter,
            "clientRate": amounts.client_rate,
            "interpreterRate": amounts.interpreter_rate,
            "clientAmountCalculated": amounts.total_client_amount,
            "totalClientAmount": amounts.total_client_amount,
            "interpreterAmountCalculated": amounts.total_interpreter_amount,
            "totalInterpreterAmount": amounts.total_interpreter_amount,
            "adminApproved": True,
            "adminApprovedAt": utcnow_iso(),
            "status": TimesheetStatus.APPROVED.value,
            "readyForClientInvoice": True,
            "readyForInterpreterInvoice": True,
        }
        merged = await self.adapter.update_if(
            TIMESHEETS,
            timesheet_id,
            {"status": [TimesheetStatus.SUBMITTED.value], "adminApproved": [False]},
            patch,
        )
        if merged is None:
            raise InvalidTransition("Timesheet was approved or rejected concurrently")
        log_status_change(
            "timesheet",
            timesheet_id,
            TimesheetStatus.SUBMITTED,
            TimesheetStatus.APPROVED,
            client_amount=amounts.total_client_amount,
            interpreter_amount=amounts.total_interpreter_amount,
        )
        return schemas.Timesheet.from_document(merged)

    async def reject(self, timesheet_id: str, reason: Optional[str] = None) -> Optional[schemas.Timesheet]:
        timesheet = await self.get(timesheet_id)
        if timesheet is None:
            return None
        if timesheet.status != TimesheetStatus.SUBMITTED:
            raise InvalidTransition(
                f"Timesheet is {timesheet.status.value} and cannot be rejected",
                {"status": timesheet.status.value},
            )
        merged = await self.adapter.update_if(
            TIMESHEETS,
            timesheet_id,
            {"status": [TimesheetStatus.SUBMITTED.value]},
            {"status": TimesheetStatus.REJECTED.value, "rejectionReason": reason},
        )
        if merged is None:
            raise InvalidTransition("Timesheet was approved or rejected concurrently")
        log_status_change("timesheet", timesheet_id, TimesheetStatus.SUBMITTED, TimesheetStatus.REJECTED)
        return schemas.Timesheet.from_document(merged)

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from .. import models, schemas
from ..core.config import settings
from ..models.booking_status import (
    BookingStatus,
    CLIENT_CANCELLABLE_STATUSES,
    OPEN_STATUSES,
    STAFFED_STATUSES,
    TERMINAL_STATUSES,
    can_transition,
)
from ..models.user import UserRole
from ..services.reference_codes import guest_booking_ref
from ..services.schedule import expected_end_time
from ..utils.errors import InvalidTransition, PermissionDenied, ValidationFailed, field_errors_from_pydantic
from ..utils.status_logger import log_status_change
from .crud_assignment import AssignmentEngine
from .persistence import PersistenceAdapter, utcnow_iso

logger = logging.getLogger(__name__)

BOOKINGS = models.Collections.BOOKINGS

# Never taken from caller input; only the state machine sets these.
PROTECTED_FIELDS = ("id", "status", "interpreterId", "interpreter_id", "interpreterName", "interpreter_name")
SCHEDULE_FIELDS = ("date", "startTime", "durationMinutes")


def _parse(model_cls, draft: Union[Mapping[str, Any], Any]):
    if isinstance(draft, model_cls):
        return draft
    if hasattr(draft, "model_dump"):
        draft = draft.model_dump(by_alias=True)
    cleaned = {k: v for k, v in dict(draft).items() if k not in PROTECTED_FIELDS}
    try:
        return model_cls.model_validate(cleaned)
    except ValidationError as exc:
        errors = field_errors_from_pydantic(exc)
        field = next(iter(errors))
        raise ValidationFailed(f"Invalid {field}: {errors[field]}", errors) from exc


class BookingManager:
    """CRUD and lifecycle transitions for booking requests."""

    def __init__(self, adapter: PersistenceAdapter):
        self.adapter = adapter

    async def _client_name(self, client_id: Optional[str]) -> Optional[str]:
        if not client_id:
            return None
        client = await self.adapter.fetch_one(models.Collections.CLIENTS, client_id)
        return (client or {}).get("companyName")

    async def _store_new(self, data: Dict[str, Any]) -> schemas.Booking:
        data["status"] = BookingStatus.REQUESTED.value
        data["interpreterId"] = None
        data["interpreterName"] = None
        data["expectedEndTime"] = expected_end_time(data["startTime"], data["durationMinutes"])
        data["createdAt"] = utcnow_iso()
        booking_id = await self.adapter.write(BOOKINGS, None, data)
        logger.info("Created booking %s (%s)", booking_id, data.get("bookingRef") or data.get("clientId"))
        return schemas.Booking.from_document({**data, "id": booking_id})

    async def create(
        self,
        draft: Union[schemas.BookingCreate, Mapping[str, Any]],
        actor: Optional[schemas.Actor] = None,
    ) -> schemas.Booking:
        """Create a booking in REQUESTED; caller-supplied status/interpreter fields are dropped."""
        booking_in = _parse(schemas.BookingCreate, draft)
        data = booking_in.to_document()
        if actor is not None:
            if actor.role == UserRole.CLIENT:
                # Clients always book for the organisation they belong to.
                data["clientId"] = actor.party_id
                data["requestedByUserId"] = actor.id
            elif actor.role == UserRole.ADMIN:
                data["requestedByUserId"] = data.get("requestedByUserId") or actor.id
            elif actor.role == UserRole.INTERPRETER:
                raise PermissionDenied("Interpreters cannot request bookings")
            else:
                raise PermissionDenied(f"Unknown role {actor.role}")
        if not data.get("clientId"):
            raise ValidationFailed.for_field("clientId", "required")
        data["clientName"] = data.get("clientName") or await self._client_name(data["clientId"])
        return await self._store_new(data)

    async def create_guest(
        self,
        draft: Union[schemas.GuestBookingCreate, Mapping[str, Any]],
    ) -> schemas.Booking:
        """Create a REQUESTED booking for a guest with no client account yet."""
        booking_in = _parse(schemas.GuestBookingCreate, draft)
        data = booking_in.to_document()
        contact = booking_in.guest_contact
        data["clientId"] = None
        data["clientName"] = contact.organisation or contact.name
        data["bookingRef"] = guest_booking_ref(settings.GUEST_BOOKING_REF_PREFIX)
        return await self._store_new(data)

    async def get(self, booking_id: str) -> Optional[schemas.Booking]:
        doc = await self.adapter.fetch_one(BOOKINGS, booking_id)
        return schemas.Booking.from_document(doc) if doc else None

    async def list_by_client(self, client_id: str) -> List[schemas.Booking]:
        docs = await self.adapter.fetch_collection(BOOKINGS, [("clientId", "==", client_id)], ("date", True))
        return [schemas.Booking.from_document(d) for d in docs]

    async def list_all(self, status: Optional[BookingStatus] = None) -> List[schemas.Booking]:
        filters = [("status", "==", status.value)] if status else []
        docs = await self.adapter.fetch_collection(BOOKINGS, filters, ("date", True))
        return [schemas.Booking.from_document(d) for d in docs]

    async def list_for_interpreter(self, interpreter_id: str) -> List[schemas.Booking]:
        """The interpreter's schedule: every staffed booking that is not cancelled."""
        docs = await self.adapter.fetch_collection(
            BOOKINGS,
            [("interpreterId", "==", interpreter_id), ("status", "!=", BookingStatus.CANCELLED.value)],
            ("date", False),
        )
        return [schemas.Booking.from_document(d) for d in docs]

    async def update(
        self,
        booking_id: str,
        patch: Union[schemas.BookingUpdate, Mapping[str, Any]],
        actor: Optional[schemas.Actor] = None,
    ) -> Optional[schemas.Booking]:
        """Edit booking details. Status and interpreter fields are not editable here."""
        booking = await self.get(booking_id)
        if booking is None:
            return None
        changes = _parse(schemas.BookingUpdate, patch).changes()
        if not changes:
            return booking
        if booking.status in TERMINAL_STATUSES:
            raise InvalidTransition(f"Booking is {booking.status.value} and can no longer be edited")
        touches_schedule = any(f in changes for f in SCHEDULE_FIELDS)
        if touches_schedule and booking.status in STAFFED_STATUSES and not (actor and actor.is_admin):
            raise InvalidTransition(
                "Date, start time and duration are fixed once a booking is confirmed",
                {f: "locked" for f in SCHEDULE_FIELDS if f in changes},
            )
        # The edited booking must still satisfy the creation rules (onsite address)
        _parse(schemas.BookingCreate, {**booking.to_document(), **changes})
        if touches_schedule:
            changes["expectedEndTime"] = expected_end_time(
                changes.get("startTime", booking.start_time),
                changes.get("durationMinutes", booking.duration_minutes),
            )
        merged = await self.adapter.update(BOOKINGS, booking_id, changes)
        return schemas.Booking.from_document(merged) if merged else None

    async def set_status(self, booking_id: str, status: BookingStatus) -> Optional[schemas.Booking]:
        """Move a booking along the state machine.

        CONFIRMED needs an interpreter and is reached through
        ``assign_interpreter``; leaving the staffed statuses for CANCELLED
        clears the interpreter fields.
        """
        booking = await self.get(booking_id)
        if booking is None:
            return None
        status = BookingStatus(status)
        if not can_transition(booking.status, status):
            raise InvalidTransition(
                f"Cannot move booking from {booking.status.value} to {status.value}",
                {"status": "invalid_transition"},
            )
        if status == BookingStatus.CONFIRMED:
            raise InvalidTransition(
                "Confirming a booking requires an interpreter; use assign_interpreter",
                {"interpreterId": "required"},
            )
        patch: Dict[str, Any] = {"status": status.value}
        if status not in STAFFED_STATUSES:
            patch.update({"interpreterId": None, "interpreterName": None})
        merged = await self.adapter.update_if(BOOKINGS, booking_id, {"status": [booking.status.value]}, patch)
        if merged is None:
            raise InvalidTransition("Booking changed while updating; reload and retry")
        log_status_change("booking", booking_id, booking.status, status)
        if status == BookingStatus.CANCELLED:
            await AssignmentEngine(self.adapter).expire_offers_for_booking(booking_id)
        return schemas.Booking.from_document(merged)

    async def cancel(self, booking_id: str, actor: Optional[schemas.Actor] = None) -> Optional[schemas.Booking]:
        """Cancel a booking. Clients may only withdraw bookings that are not yet staffed."""
        booking = await self.get(booking_id)
        if booking is None:
            return None
        if actor is not None and actor.role == UserRole.CLIENT:
            if booking.client_id != actor.party_id:
                raise PermissionDenied("Booking belongs to another client")
            if booking.status not in CLIENT_CANCELLABLE_STATUSES:
                raise InvalidTransition(
                    f"Booking is {booking.status.value}; contact the agency to cancel",
                    {"status": booking.status.value},
                )
        elif actor is not None and actor.role == UserRole.INTERPRETER:
            raise PermissionDenied("Interpreters cannot cancel bookings")
        return await self.set_status(booking_id, BookingStatus.CANCELLED)

    async def assign_interpreter(
        self,
        booking_id: str,
        interpreter_id: str,
        interpreter_name: Optional[str] = None,
    ) -> Optional[schemas.Booking]:
        """Confirm a booking with an interpreter in one write.

        Status, interpreterId and interpreterName land together, and only if
        the booking is still open at write time.
        """
        booking = await self.get(booking_id)
        if booking is None:
            return None
        if interpreter_name is None:
            interpreter = await self.adapter.fetch_one(models.Collections.INTERPRETERS, interpreter_id)
            if interpreter is None:
                raise ValidationFailed.for_field("interpreterId", "Interpreter not found")
            interpreter_name = interpreter.get("name")
        if booking.status not in OPEN_STATUSES:
            raise InvalidTransition(
                f"Cannot confirm a booking that is {booking.status.value}",
                {"status": booking.status.value},
            )
        merged = await self.adapter.update_if(
            BOOKINGS,
            booking_id,
            {"status": [s.value for s in OPEN_STATUSES]},
            {
                "status": BookingStatus.CONFIRMED.value,
                "interpreterId": interpreter_id,
                "interpreterName": interpreter_name,
            },
        )
        if merged is None:
            raise InvalidTransition("Booking was confirmed or cancelled concurrently")
        log_status_change("booking", booking_id, booking.status, BookingStatus.CONFIRMED, interpreter_id=interpreter_id)
        # A direct assignment supersedes any outstanding offers
        await AssignmentEngine(self.adapter).expire_offers_for_booking(booking_id)
        return schemas.Booking.from_document(merged)

    async def link_client(self, booking_id: str, client_id: str) -> Optional[schemas.Booking]:
        """Attach a guest booking to a client account."""
        client_name = await self._client_name(client_id)
        if client_name is None:
            raise ValidationFailed.for_field("clientId", "Client not found")
        merged = await self.adapter.update(BOOKINGS, booking_id, {"clientId": client_id, "clientName": client_name})
        return schemas.Booking.from_document(merged) if merged else None

"""Offer engine: broadcast a booking to interpreters and resolve one acceptance.

Booking status changes made here always go through a conditional write on
the booking's current status, so two interpreters accepting at the same time
cannot both win: the second accept sees the precondition fail and is told the
booking is already confirmed.
"""

import asyncio
import datetime as dt
import logging
from typing import Any, Dict, Iterable, List, Optional

from .. import models, schemas
from ..models.assignment import AssignmentStatus
from ..models.booking_status import BookingStatus, OPEN_STATUSES
from ..models.user import UserRole
from ..services.schedule import find_conflict
from ..utils.errors import (
    BookingAlreadyConfirmed,
    InvalidTransition,
    PermissionDenied,
    ScheduleConflict,
    ValidationFailed,
)
from ..utils.status_logger import log_status_change
from .crud_interpreter import get_interpreter
from .persistence import PersistenceAdapter, utcnow_iso

logger = logging.getLogger(__name__)

ASSIGNMENTS = models.Collections.ASSIGNMENTS
BOOKINGS = models.Collections.BOOKINGS

SNAPSHOT_FIELDS = (
    "serviceType",
    "languageFrom",
    "languageTo",
    "date",
    "startTime",
    "durationMinutes",
    "expectedEndTime",
    "locationType",
    "postcode",
    "clientName",
)
# A snapshot missing any of these is refetched before display
REQUIRED_SNAPSHOT_FIELDS = ("serviceType", "languageFrom", "languageTo", "date", "startTime", "durationMinutes")

# Only these booking statuses may still be won by an accept
ACCEPTABLE_BOOKING_STATUSES = [BookingStatus.OFFERED.value, BookingStatus.SEARCHING.value]


def booking_snapshot(booking: Dict[str, Any]) -> Dict[str, Any]:
    return {k: booking.get(k) for k in SNAPSHOT_FIELDS if booking.get(k) is not None}


def snapshot_is_stale(snapshot: Optional[Dict[str, Any]]) -> bool:
    return not snapshot or any(snapshot.get(k) in (None, "") for k in REQUIRED_SNAPSHOT_FIELDS)


class AssignmentEngine:
    def __init__(self, adapter: PersistenceAdapter):
        self.adapter = adapter

    async def get(self, assignment_id: str) -> Optional[schemas.Assignment]:
        doc = await self.adapter.fetch_one(ASSIGNMENTS, assignment_id)
        return schemas.Assignment.from_document(doc) if doc else None

    async def create_offer(self, booking_id: str, interpreter_id: str) -> Optional[schemas.Assignment]:
        """Offer a booking to one interpreter.

        A REQUESTED booking moves to OFFERED; a booking already OFFERED or
        SEARCHING keeps its status. Offering again to an interpreter who
        still holds an open offer returns that offer.
        """
        booking = await self.adapter.fetch_one(BOOKINGS, booking_id)
        if booking is None:
            return None
        current = BookingStatus(booking["status"])
        if current not in OPEN_STATUSES:
            raise InvalidTransition(
                f"Cannot offer a booking that is {current.value}",
                {"status": current.value},
            )
        if await get_interpreter(self.adapter, interpreter_id) is None:
            raise ValidationFailed.for_field("interpreterId", "Interpreter not found")

        existing = await self.adapter.fetch_collection(
            ASSIGNMENTS,
            [
                ("bookingId", "==", booking_id),
                ("interpreterId", "==", interpreter_id),
                ("status", "==", AssignmentStatus.OFFERED.value),
            ],
        )
        if existing:
            return schemas.Assignment.from_document(existing[0])

        data = {
            "bookingId": booking_id,
            "interpreterId": interpreter_id,
            "status": AssignmentStatus.OFFERED.value,
            "offeredAt": utcnow_iso(),
            "respondedAt": None,
            "bookingSnapshot": booking_snapshot(booking),
        }
        assignment_id = await self.adapter.write(ASSIGNMENTS, None, data)
        logger.info("Offered booking %s to interpreter %s (%s)", booking_id, interpreter_id, assignment_id)

        if current == BookingStatus.REQUESTED:
            moved = await self.adapter.update_if(
                BOOKINGS,
                booking_id,
                {"status": [BookingStatus.REQUESTED.value]},
                {"status": BookingStatus.OFFERED.value},
            )
            if moved is not None:
                log_status_change("booking", booking_id, current, BookingStatus.OFFERED)
        return schemas.Assignment.from_document({**data, "id": assignment_id})

    async def broadcast(self, booking_id: str, interpreter_ids: Iterable[str]) -> Optional[List[schemas.Assignment]]:
        offers = []
        for interpreter_id in dict.fromkeys(interpreter_ids):
            offer = await self.create_offer(booking_id, interpreter_id)
            if offer is None:
                return None
            offers.append(offer)
        return offers

    async def _with_fresh_snapshots(self, docs: List[Dict[str, Any]]) -> List[schemas.Assignment]:
        stale = [d for d in docs if snapshot_is_stale(d.get("bookingSnapshot"))]
        if stale:
            bookings = await asyncio.gather(*(self.adapter.fetch_one(BOOKINGS, d["bookingId"]) for d in stale))
            for doc, booking in zip(stale, bookings):
                if booking is None:
                    continue
                doc["bookingSnapshot"] = booking_snapshot(booking)
                await self.adapter.update(ASSIGNMENTS, doc["id"], {"bookingSnapshot": doc["bookingSnapshot"]})
        return [schemas.Assignment.from_document(d) for d in docs]

    async def list_offers_for_interpreter(self, interpreter_id: str) -> List[schemas.Assignment]:
        """Open offers for an interpreter, newest first, each with a usable booking snapshot."""
        docs = await self.adapter.fetch_collection(
            ASSIGNMENTS,
            [("interpreterId", "==", interpreter_id), ("status", "==", AssignmentStatus.OFFERED.value)],
            ("offeredAt", True),
        )
        return await self._with_fresh_snapshots(docs)

    async def list_assignments_for_interpreter(self, interpreter_id: str) -> List[schemas.Assignment]:
        docs = await self.adapter.fetch_collection(
            ASSIGNMENTS, [("interpreterId", "==", interpreter_id)], ("offeredAt", True)
        )
        return await self._with_fresh_snapshots(docs)

    async def list_assignments_for_booking(self, booking_id: str) -> List[schemas.Assignment]:
        docs = await self.adapter.fetch_collection(ASSIGNMENTS, [("bookingId", "==", booking_id)], ("offeredAt", False))
        return [schemas.Assignment.from_document(d) for d in docs]

    async def check_conflict(
        self,
        interpreter_id: str,
        date: dt.date,
        start_time: str,
        duration_minutes: int,
        exclude_booking_id: Optional[str] = None,
    ) -> Optional[schemas.Booking]:
        """First CONFIRMED booking of the interpreter overlapping the candidate slot."""
        day = date if isinstance(date, dt.date) else dt.date.fromisoformat(str(date))
        docs = await self.adapter.fetch_collection(
            BOOKINGS,
            [
                ("interpreterId", "==", interpreter_id),
                ("status", "==", BookingStatus.CONFIRMED.value),
                ("date", "==", day.isoformat()),
            ],
            ("startTime", False),
        )
        bookings = [schemas.Booking.from_document(d) for d in docs]
        return find_conflict(day, start_time, duration_minutes, bookings, exclude_booking_id)

    def _check_owner(self, assignment: schemas.Assignment, actor: Optional[schemas.Actor]) -> None:
        if actor is None or actor.role == UserRole.ADMIN:
            return
        if actor.role == UserRole.INTERPRETER:
            if actor.party_id != assignment.interpreter_id:
                raise PermissionDenied("Offer belongs to another interpreter")
        else:
            raise PermissionDenied("Only the offered interpreter can respond to an offer")

    async def accept(
        self,
        assignment_id: str,
        actor: Optional[schemas.Actor] = None,
        check_conflicts: bool = False,
    ) -> Optional[schemas.Assignment]:
        """Accept an offer and confirm its booking for the interpreter.

        The offer is claimed and then the booking confirmed, each with a
        conditional write. If another accept got there first this offer is
        expired and ``BookingAlreadyConfirmed`` is raised. On success every other open offer for the booking expires.
        """
        assignment = await self.get(assignment_id)
        if assignment is None:
            return None
        self._check_owner(assignment, actor)
        if assignment.status != AssignmentStatus.OFFERED:
            raise InvalidTransition(
                f"Offer is already {assignment.status.value}",
                {"status": assignment.status.value},
            )
        booking = await self.adapter.fetch_one(BOOKINGS, assignment.booking_id)
        if booking is None:
            raise InvalidTransition("Booking for this offer no longer exists", {"bookingId": assignment.booking_id})

        if check_conflicts:
            clash = await self.check_conflict(
                assignment.interpreter_id,
                booking["date"],
                booking["startTime"],
                booking["durationMinutes"],
                exclude_booking_id=assignment.booking_id,
            )
            if clash is not None:
                raise ScheduleConflict(
                    f"Interpreter is already booked {clash.start_time}-{clash.expected_end_time} on {clash.date}",
                    {"bookingId": clash.id},
                )

        now = utcnow_iso()
        # Claim the offer first so a concurrent decline or expiry cannot be overwritten
        claimed = await self.adapter.update_if(
            ASSIGNMENTS,
            assignment_id,
            {"status": [AssignmentStatus.OFFERED.value]},
            {"status": AssignmentStatus.ACCEPTED.value, "respondedAt": now},
        )
        if claimed is None:
            current = await self.get(assignment_id)
            state = current.status.value if current else assignment.status.value
            raise InvalidTransition(f"Offer is already {state}", {"status": state})

        interpreter = await get_interpreter(self.adapter, assignment.interpreter_id)
        confirmed = await self.adapter.update_if(
            BOOKINGS,
            assignment.booking_id,
            {"status": ACCEPTABLE_BOOKING_STATUSES},
            {
                "status": BookingStatus.CONFIRMED.value,
                "interpreterId": assignment.interpreter_id,
                "interpreterName": interpreter.name if interpreter else None,
            },
        )
        if confirmed is None:
            await self.adapter.update_if(
                ASSIGNMENTS,
                assignment_id,
                {"status": [AssignmentStatus.ACCEPTED.value]},
                {"status": AssignmentStatus.EXPIRED.value},
            )
            log_status_change("assignment", assignment_id, AssignmentStatus.OFFERED, AssignmentStatus.EXPIRED)
            raise BookingAlreadyConfirmed(
                "Booking has already been confirmed with another interpreter",
                {"bookingId": assignment.booking_id},
            )
        log_status_change(
            "booking",
            assignment.booking_id,
            booking["status"],
            BookingStatus.CONFIRMED,
            interpreter_id=assignment.interpreter_id,
        )
        log_status_change("assignment", assignment_id, AssignmentStatus.OFFERED, AssignmentStatus.ACCEPTED)
        await self.expire_offers_for_booking(assignment.booking_id)
        return schemas.Assignment.from_document(claimed)

    async def expire_offers_for_booking(self, booking_id: str) -> int:
        """Expire every still-open offer for a booking; returns how many changed."""
        offers = await self.adapter.fetch_collection(
            ASSIGNMENTS,
            [("bookingId", "==", booking_id), ("status", "==", AssignmentStatus.OFFERED.value)],
        )
        expired = 0
        for offer in offers:
            merged = await self.adapter.update_if(
                ASSIGNMENTS,
                offer["id"],
                {"status": [AssignmentStatus.OFFERED.value]},
                {"status": AssignmentStatus.EXPIRED.value, "respondedAt": utcnow_iso()},
            )
            if merged is not None:
                expired += 1
                log_status_change("assignment", offer["id"], AssignmentStatus.OFFERED, AssignmentStatus.EXPIRED)
        return expired

    async def _close_offer(
        self,
        assignment_id: str,
        new_status: AssignmentStatus,
        actor: Optional[schemas.Actor],
    ) -> Optional[schemas.Assignment]:
        assignment = await self.get(assignment_id)
        if assignment is None:
            return None
        self._check_owner(assignment, actor)
        merged = await self.adapter.update_if(
            ASSIGNMENTS,
            assignment_id,
            {"status": [AssignmentStatus.OFFERED.value]},
            {"status": new_status.value, "respondedAt": utcnow_iso()},
        )
        if merged is None:
            current = await self.get(assignment_id)
            state = current.status.value if current else assignment.status.value
            raise InvalidTransition(f"Offer is already {state}", {"status": state})
        log_status_change("assignment", assignment_id, AssignmentStatus.OFFERED, new_status)
        await self._reopen_if_unoffered(assignment.booking_id)
        return schemas.Assignment.from_document(merged)

    async def _reopen_if_unoffered(self, booking_id: str) -> None:
        # Re-query: another offer may have been created or answered meanwhile.
        remaining = await self.adapter.fetch_collection(
            ASSIGNMENTS,
            [("bookingId", "==", booking_id), ("status", "==", AssignmentStatus.OFFERED.value)],
        )
        if remaining:
            return
        moved = await self.adapter.update_if(
            BOOKINGS,
            booking_id,
            {"status": [BookingStatus.OFFERED.value]},
            {"status": BookingStatus.SEARCHING.value},
        )
        if moved is not None:
            log_status_change("booking", booking_id, BookingStatus.OFFERED, BookingStatus.SEARCHING)

    async def decline(self, assignment_id: str, actor: Optional[schemas.Actor] = None) -> Optional[schemas.Assignment]:
        return await self._close_offer(assignment_id, AssignmentStatus.DECLINED, actor)

    async def expire(self, assignment_id: str, actor: Optional[schemas.Actor] = None) -> Optional[schemas.Assignment]:
        return await self._close_offer(assignment_id, AssignmentStatus.EXPIRED, actor)

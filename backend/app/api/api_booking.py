# backend/app/api/api_booking.py

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import ORJSONResponse

from .. import schemas
from ..crud import AssignmentEngine, BookingManager, PersistenceAdapter
from ..models.booking_status import BookingStatus
from ..models.user import UserRole
from ..utils import error_response
from .dependencies import get_adapter, get_current_actor, get_current_admin, get_current_client

router = APIRouter(tags=["bookings"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)
# ‣ Note: no prefix here.  main.py already does:
#     app.include_router(router, prefix="/api/v1/bookings", …)


def _not_found(booking_id: str):
    return error_response("Booking not found", {"booking_id": "not_found"}, status.HTTP_404_NOT_FOUND)


def _ensure_visible(booking: Optional[schemas.Booking], booking_id: str, actor: schemas.Actor) -> schemas.Booking:
    if booking is None:
        raise _not_found(booking_id)
    if actor.role == UserRole.ADMIN:
        return booking
    if actor.role == UserRole.CLIENT and booking.client_id == actor.party_id:
        return booking
    if actor.role == UserRole.INTERPRETER and booking.interpreter_id == actor.party_id:
        return booking
    # Hide other parties' bookings entirely
    raise _not_found(booking_id)


@router.post("/", response_model=schemas.Booking, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_in: schemas.BookingCreate,
    actor: schemas.Actor = Depends(get_current_client),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    """Request an interpreter. The booking always starts REQUESTED."""
    return await BookingManager(adapter).create(booking_in, actor)


@router.post("/guest", response_model=schemas.Booking, status_code=status.HTTP_201_CREATED)
async def create_guest_booking(
    booking_in: schemas.GuestBookingCreate,
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    """Request an interpreter without an account; returns the booking reference."""
    return await BookingManager(adapter).create_guest(booking_in)


@router.get("/", response_model=List[schemas.Booking])
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    actor: schemas.Actor = Depends(get_current_actor),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    manager = BookingManager(adapter)
    if actor.role == UserRole.ADMIN:
        return await manager.list_all(status_filter)
    elif actor.role == UserRole.CLIENT:
        bookings = await manager.list_by_client(actor.party_id)
    elif actor.role == UserRole.INTERPRETER:
        bookings = await manager.list_for_interpreter(actor.party_id)
    else:
        bookings = []
    if status_filter is not None:
        bookings = [b for b in bookings if b.status == status_filter]
    return bookings


@router.get("/{booking_id}", response_model=schemas.Booking)
async def read_booking(
    booking_id: str,
    actor: schemas.Actor = Depends(get_current_actor),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    return _ensure_visible(await BookingManager(adapter).get(booking_id), booking_id, actor)


@router.patch("/{booking_id}", response_model=schemas.Booking)
async def update_booking(
    booking_id: str,
    booking_in: schemas.BookingUpdate,
    actor: schemas.Actor = Depends(get_current_client),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    manager = BookingManager(adapter)
    _ensure_visible(await manager.get(booking_id), booking_id, actor)
    updated = await manager.update(booking_id, booking_in, actor)
    if updated is None:
        raise _not_found(booking_id)
    return updated


@router.patch("/{booking_id}/status", response_model=schemas.Booking)
async def update_booking_status(
    booking_id: str,
    status_in: schemas.BookingStatusUpdate,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    """Admin transition, e.g. CONFIRMED -> COMPLETED once the job has happened."""
    booking = await BookingManager(adapter).set_status(booking_id, status_in.status)
    if booking is None:
        raise _not_found(booking_id)
    return booking


@router.post("/{booking_id}/cancel", response_model=schemas.Booking)
async def cancel_booking(
    booking_id: str,
    actor: schemas.Actor = Depends(get_current_client),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    booking = await BookingManager(adapter).cancel(booking_id, actor)
    if booking is None:
        raise _not_found(booking_id)
    return booking


@router.post("/{booking_id}/assign", response_model=schemas.Booking)
async def assign_interpreter(
    booking_id: str,
    payload: schemas.AssignInterpreter,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    """Confirm a booking directly with an interpreter, bypassing offers."""
    booking = await BookingManager(adapter).assign_interpreter(booking_id, payload.interpreter_id)
    if booking is None:
        raise _not_found(booking_id)
    return booking


@router.post("/{booking_id}/link-client", response_model=schemas.Booking)
async def link_client(
    booking_id: str,
    payload: schemas.LinkClient,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    booking = await BookingManager(adapter).link_client(booking_id, payload.client_id)
    if booking is None:
        raise _not_found(booking_id)
    return booking


@router.get("/{booking_id}/assignments", response_model=List[schemas.Assignment])
async def list_booking_assignments(
    booking_id: str,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    return await AssignmentEngine(adapter).list_assignments_for_booking(booking_id)

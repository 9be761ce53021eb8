import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import ORJSONResponse

from .. import schemas
from ..crud import AssignmentEngine, PersistenceAdapter, crud_interpreter
from ..models.user import UserRole
from ..utils import error_response
from .dependencies import get_adapter, get_current_admin, get_current_interpreter

router = APIRouter(tags=["assignments"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)


def _interpreter_scope(actor: schemas.Actor, interpreter_id: Optional[str]) -> str:
    """Interpreters only ever see their own offers; admins must say whose."""
    if actor.role == UserRole.INTERPRETER:
        return actor.party_id
    if not interpreter_id:
        raise error_response("interpreter_id is required", {"interpreter_id": "required"})
    return interpreter_id


def _offer_not_found():
    return error_response("Offer not found", {"assignment_id": "not_found"}, status.HTTP_404_NOT_FOUND)


@router.post("/offers", response_model=schemas.Assignment, status_code=status.HTTP_201_CREATED)
async def create_offer(
    offer_in: schemas.OfferCreate,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    offer = await AssignmentEngine(adapter).create_offer(offer_in.booking_id, offer_in.interpreter_id)
    if offer is None:
        raise error_response("Booking not found", {"booking_id": "not_found"}, status.HTTP_404_NOT_FOUND)
    return offer


@router.post("/offers/broadcast", response_model=List[schemas.Assignment], status_code=status.HTTP_201_CREATED)
async def broadcast_offer(
    broadcast_in: schemas.OfferBroadcast,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    offers = await AssignmentEngine(adapter).broadcast(broadcast_in.booking_id, broadcast_in.interpreter_ids)
    if offers is None:
        raise error_response("Booking not found", {"booking_id": "not_found"}, status.HTTP_404_NOT_FOUND)
    return offers


@router.get("/offers", response_model=List[schemas.Assignment])
async def list_open_offers(
    interpreter_id: Optional[str] = Query(default=None),
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    return await AssignmentEngine(adapter).list_offers_for_interpreter(_interpreter_scope(actor, interpreter_id))


@router.get("/assignments", response_model=List[schemas.Assignment])
async def list_assignments(
    interpreter_id: Optional[str] = Query(default=None),
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    return await AssignmentEngine(adapter).list_assignments_for_interpreter(_interpreter_scope(actor, interpreter_id))


@router.post("/assignments/{assignment_id}/accept", response_model=schemas.Assignment)
async def accept_offer(
    assignment_id: str,
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    """Accept an offer. Fails with 409 if the slot clashes or someone else accepted first."""
    assignment = await AssignmentEngine(adapter).accept(assignment_id, actor, check_conflicts=True)
    if assignment is None:
        raise _offer_not_found()
    return assignment


@router.post("/assignments/{assignment_id}/decline", response_model=schemas.Assignment)
async def decline_offer(
    assignment_id: str,
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    assignment = await AssignmentEngine(adapter).decline(assignment_id, actor)
    if assignment is None:
        raise _offer_not_found()
    return assignment


@router.post("/assignments/{assignment_id}/expire", response_model=schemas.Assignment)
async def expire_offer(
    assignment_id: str,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    assignment = await AssignmentEngine(adapter).expire(assignment_id, actor)
    if assignment is None:
        raise _offer_not_found()
    return assignment


@router.post("/conflicts/check", response_model=Optional[schemas.Booking])
async def check_conflict(
    query: schemas.ConflictQuery,
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    """The interpreter's confirmed booking clashing with the slot, or ``null``."""
    return await AssignmentEngine(adapter).check_conflict(
        _interpreter_scope(actor, query.interpreter_id),
        query.date,
        query.start_time,
        query.duration_minutes,
        query.exclude_booking_id,
    )


@router.get("/interpreters", response_model=List[schemas.Interpreter])
async def list_interpreters(
    language: Optional[str] = Query(default=None),
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    if language:
        return await crud_interpreter.find_interpreters_by_language(adapter, language)
    return await crud_interpreter.list_interpreters(adapter)

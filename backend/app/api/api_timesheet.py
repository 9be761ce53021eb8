import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import ORJSONResponse

from .. import schemas
from ..crud import PersistenceAdapter, TimesheetManager
from ..models.timesheet import TimesheetStatus
from ..models.user import UserRole
from ..utils import error_response
from .dependencies import get_adapter, get_current_admin, get_current_interpreter

router = APIRouter(tags=["timesheets"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)


def _not_found():
    return error_response("Timesheet not found", {"timesheet_id": "not_found"}, status.HTTP_404_NOT_FOUND)


@router.post("/", response_model=schemas.Timesheet, status_code=status.HTTP_201_CREATED)
async def submit_timesheet(
    timesheet_in: schemas.TimesheetCreate,
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    return await TimesheetManager(adapter).submit(timesheet_in, actor)


@router.get("/", response_model=List[schemas.Timesheet])
async def list_timesheets(
    status_filter: Optional[TimesheetStatus] = Query(default=None, alias="status"),
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    manager = TimesheetManager(adapter)
    if actor.role == UserRole.ADMIN:
        return await manager.list_all(status_filter)
    timesheets = await manager.list_for_interpreter(actor.party_id)
    if status_filter is not None:
        timesheets = [t for t in timesheets if t.status == status_filter]
    return timesheets


@router.get("/pending", response_model=List[schemas.Timesheet])
async def list_pending_timesheets(
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    return await TimesheetManager(adapter).list_pending_approval()


@router.get("/uninvoiced", response_model=List[schemas.Timesheet])
async def list_uninvoiced_timesheets(
    interpreter_id: Optional[str] = Query(default=None),
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    """Approved timesheets the interpreter can still put on an invoice."""
    if actor.role == UserRole.INTERPRETER:
        interpreter_id = actor.party_id
    if not interpreter_id:
        raise error_response("interpreter_id is required", {"interpreter_id": "required"})
    return await TimesheetManager(adapter).list_uninvoiced_for_interpreter(interpreter_id)


@router.get("/{timesheet_id}", response_model=schemas.Timesheet)
async def read_timesheet(
    timesheet_id: str,
    actor: schemas.Actor = Depends(get_current_interpreter),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    timesheet = await TimesheetManager(adapter).get(timesheet_id)
    if timesheet is None or (actor.role == UserRole.INTERPRETER and timesheet.interpreter_id != actor.party_id):
        raise _not_found()
    return timesheet


@router.post("/{timesheet_id}/approve", response_model=schemas.Timesheet)
async def approve_timesheet(
    timesheet_id: str,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    timesheet = await TimesheetManager(adapter).approve(timesheet_id)
    if timesheet is None:
        raise _not_found()
    return timesheet


@router.post("/{timesheet_id}/reject", response_model=schemas.Timesheet)
async def reject_timesheet(
    timesheet_id: str,
    payload: schemas.TimesheetReject,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    timesheet = await TimesheetManager(adapter).reject(timesheet_id, payload.reason)
    if timesheet is None:
        raise _not_found()
    return timesheet

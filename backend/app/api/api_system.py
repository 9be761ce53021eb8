import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import ORJSONResponse

from .. import schemas
from ..crud import PersistenceAdapter, crud_rate, crud_system
from ..models.rate import RateType
from .dependencies import get_adapter, get_current_actor, get_current_admin

router = APIRouter(tags=["system"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)


@router.get("/system/connection", response_model=schemas.ConnectionStatus)
async def connection_status(adapter: PersistenceAdapter = Depends(get_adapter)):
    """Whether the remote store answers within the probe timeout."""
    online = await adapter.check_connection()
    return schemas.ConnectionStatus(online=online, mode="online" if online else "offline")


@router.get("/system/settings", response_model=schemas.SystemSettings)
async def read_settings(
    actor: schemas.Actor = Depends(get_current_actor),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    return await crud_system.get_settings(adapter)


@router.patch("/system/settings", response_model=schemas.SystemSettings)
async def update_settings(
    changes: Dict[str, Any] = Body(...),
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    return await crud_system.update_settings(adapter, changes)


@router.post("/system/seed")
async def seed_demo_data(
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    counts = await crud_system.seed_demo_data(adapter)
    return {"seeded": counts}


@router.get("/rates", response_model=List[schemas.Rate])
async def list_rates(
    rate_type: Optional[RateType] = Query(default=None),
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    return await crud_rate.list_rates(adapter, rate_type)


@router.put("/rates", response_model=schemas.Rate)
async def upsert_rate(
    rate_in: schemas.Rate,
    actor: schemas.Actor = Depends(get_current_admin),
    adapter: PersistenceAdapter = Depends(get_adapter),
):
    return await crud_rate.upsert_rate(adapter, rate_in)

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from ..models.assignment import AssignmentStatus
from .base import DocumentSchema
from .booking import normalize_start_time


class Assignment(DocumentSchema):
    id: str
    booking_id: str
    interpreter_id: str
    status: AssignmentStatus = AssignmentStatus.OFFERED
    offered_at: dt.datetime
    responded_at: Optional[dt.datetime] = None
    # Denormalized copy of booking fields at offer time; display cache only.
    booking_snapshot: Dict[str, Any] = Field(default_factory=dict)


class OfferCreate(DocumentSchema):
    booking_id: str = Field(min_length=1)
    interpreter_id: str = Field(min_length=1)


class OfferBroadcast(DocumentSchema):
    booking_id: str = Field(min_length=1)
    interpreter_ids: List[str] = Field(min_length=1)


class ConflictQuery(DocumentSchema):
    interpreter_id: Optional[str] = None
    date: dt.date
    start_time: str
    duration_minutes: int = Field(gt=0)
    exclude_booking_id: Optional[str] = None

    @field_validator("start_time", mode="before")
    def check_start_time(cls, v: Any) -> str:
        return normalize_start_time(str(v))

import datetime as dt
import re
from typing import Any, Dict, Optional

from pydantic import Field, field_validator, model_validator

from ..models.booking import ServiceType, LocationType, GenderPreference
from ..models.booking_status import BookingStatus
from .base import DocumentSchema

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")

REQUIRED_BOOKING_FIELDS = (
    "service_type",
    "language_from",
    "language_to",
    "date",
    "start_time",
    "duration_minutes",
    "location_type",
)


def normalize_start_time(value: str) -> str:
    """Return ``value`` as zero-padded ``HH:MM``."""
    match = _TIME_RE.match((value or "").strip())
    if not match:
        raise ValueError("startTime must be HH:MM")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


class GuestContact(DocumentSchema):
    name: str = Field(min_length=1)
    organisation: str = ""
    email: str = Field(min_length=3)
    phone: Optional[str] = None
    billing_email: Optional[str] = None


# Shared properties for Booking
class BookingBase(DocumentSchema):
    service_type: ServiceType
    language_from: str = Field(min_length=1)
    language_to: str = Field(min_length=1)
    date: dt.date
    start_time: str
    duration_minutes: int = Field(gt=0)
    location_type: LocationType
    address: Optional[str] = None
    postcode: Optional[str] = None
    online_link: Optional[str] = None
    cost_code: Optional[str] = None
    case_type: Optional[str] = None
    notes: Optional[str] = None
    gender_preference: Optional[GenderPreference] = None

    @field_validator("start_time", mode="before")
    def check_start_time(cls, v: Any) -> str:
        return normalize_start_time(str(v))


class _BookingInput(BookingBase):
    @model_validator(mode="after")
    def onsite_needs_address(self) -> "_BookingInput":
        if self.location_type == LocationType.ONSITE and not (self.address or self.postcode):
            raise ValueError("address or postcode is required for onsite bookings")
        return self


# Properties to receive on item creation (status and interpreter are never accepted)
class BookingCreate(_BookingInput):
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    requested_by_user_id: Optional[str] = None


class GuestBookingCreate(_BookingInput):
    guest_contact: GuestContact


# Properties an admin or owning client may edit
class BookingUpdate(DocumentSchema):
    service_type: Optional[ServiceType] = None
    language_from: Optional[str] = Field(default=None, min_length=1)
    language_to: Optional[str] = Field(default=None, min_length=1)
    date: Optional[dt.date] = None
    start_time: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    location_type: Optional[LocationType] = None
    address: Optional[str] = None
    postcode: Optional[str] = None
    online_link: Optional[str] = None
    cost_code: Optional[str] = None
    case_type: Optional[str] = None
    notes: Optional[str] = None
    gender_preference: Optional[GenderPreference] = None

    # Omitting these leaves them unchanged; an explicit null is rejected
    @field_validator(*REQUIRED_BOOKING_FIELDS, mode="before")
    def not_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("may not be null")
        return v

    @field_validator("start_time")
    def check_start_time(cls, v: str) -> str:
        return normalize_start_time(v)

    def changes(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent, in stored form."""
        return self.model_dump(by_alias=True, mode="json", exclude_unset=True)


class Booking(BookingBase):
    id: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    requested_by_user_id: Optional[str] = None
    booking_ref: Optional[str] = None
    guest_contact: Optional[GuestContact] = None
    expected_end_time: Optional[str] = None
    status: BookingStatus = BookingStatus.REQUESTED
    interpreter_id: Optional[str] = None
    interpreter_name: Optional[str] = None
    created_at: Optional[dt.datetime] = None

class BookingStatusUpdate(DocumentSchema):
    status: BookingStatus


class AssignInterpreter(DocumentSchema):
    interpreter_id: str = Field(min_length=1)


class LinkClient(DocumentSchema):
    client_id: str = Field(min_length=1)

from typing import Optional

from pydantic import Field

from ..models.booking import ServiceType
from ..models.rate import RateType, UnitType
from .base import DocumentSchema


class Rate(DocumentSchema):
    id: Optional[str] = None
    rate_type: RateType
    service_type: ServiceType
    unit_type: UnitType = UnitType.HOUR
    amount_per_unit: float = Field(ge=0)
    minimum_units: float = Field(default=1, ge=0)
    active: bool = True
    currency: str = "GBP"
    language_from: Optional[str] = None
    language_to: Optional[str] = None

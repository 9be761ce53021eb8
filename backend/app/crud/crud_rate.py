import logging
from typing import List, Optional

from .. import models, schemas
from ..core.config import settings
from ..models.booking import ServiceType
from ..models.rate import RateType
from .persistence import PersistenceAdapter

logger = logging.getLogger(__name__)

RATES = models.Collections.RATES


def default_rate(rate_type: RateType, service_type: ServiceType) -> schemas.Rate:
    amount = settings.DEFAULT_CLIENT_RATE if rate_type == RateType.CLIENT else settings.DEFAULT_INTERPRETER_RATE
    return schemas.Rate(
        rate_type=rate_type,
        service_type=service_type,
        amount_per_unit=amount,
        minimum_units=settings.DEFAULT_MINIMUM_UNITS,
        currency=settings.DEFAULT_CURRENCY,
    )


async def get_rate(adapter: PersistenceAdapter, rate_type: RateType, service_type: ServiceType) -> schemas.Rate:
    """Active rate for ``(rate_type, service_type)``, or the configured default."""
    docs = await adapter.fetch_collection(
        RATES,
        [
            ("rateType", "==", RateType(rate_type).value),
            ("serviceType", "==", ServiceType(service_type).value),
            ("active", "==", True),
        ],
    )
    if not docs:
        logger.info("No %s rate for %s; using default", rate_type, service_type)
        return default_rate(RateType(rate_type), ServiceType(service_type))
    return schemas.Rate.from_document(docs[0])


async def list_rates(adapter: PersistenceAdapter, rate_type: Optional[RateType] = None) -> List[schemas.Rate]:
    filters = [("rateType", "==", rate_type.value)] if rate_type else []
    docs = await adapter.fetch_collection(RATES, filters, ("serviceType", False))
    return [schemas.Rate.from_document(d) for d in docs]


async def upsert_rate(adapter: PersistenceAdapter, rate: schemas.Rate) -> schemas.Rate:
    """Store ``rate`` as the single active rate for its type and service."""
    existing = await adapter.fetch_collection(
        RATES,
        [("rateType", "==", rate.rate_type.value), ("serviceType", "==", rate.service_type.value)],
    )
    rate_id = rate.id or (existing[0]["id"] if existing else None)
    rate_id = await adapter.write(RATES, rate_id, rate.to_document())
    logger.info("Stored %s rate for %s: %.2f", rate.rate_type.value, rate.service_type.value, rate.amount_per_unit)
    return rate.model_copy(update={"id": rate_id})

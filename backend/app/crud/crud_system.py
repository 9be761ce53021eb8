import logging
from typing import Any, Dict, Mapping

from pydantic import ValidationError

from .. import models, schemas
from ..core.config import settings as app_settings
from ..services.reference_codes import format_invoice_number
from ..utils.errors import PersistenceError, ValidationFailed, field_errors_from_pydantic
from .persistence import PersistenceAdapter

logger = logging.getLogger(__name__)

SYSTEM = models.Collections.SYSTEM
SETTINGS_DOC = models.Collections.SETTINGS_DOC

# Contended increments of the invoice counter before giving up
_ALLOCATE_ATTEMPTS = 10


def default_settings() -> schemas.SystemSettings:
    return schemas.SystemSettings(
        finance=schemas.FinanceSettings(
            currency=app_settings.DEFAULT_CURRENCY,
            invoice_prefix=app_settings.INVOICE_PREFIX,
            payment_terms_days=app_settings.DEFAULT_PAYMENT_TERMS_DAYS,
        )
    )


async def _settings_doc(adapter: PersistenceAdapter) -> Dict[str, Any]:
    doc = await adapter.fetch_one(SYSTEM, SETTINGS_DOC)
    if doc is None:
        defaults = default_settings().to_document()
        await adapter.write(SYSTEM, SETTINGS_DOC, defaults)
        doc = {**defaults, "id": SETTINGS_DOC}
    return doc


async def get_settings(adapter: PersistenceAdapter) -> schemas.SystemSettings:
    return schemas.SystemSettings.from_document(await _settings_doc(adapter))


async def update_settings(adapter: PersistenceAdapter, changes: Mapping[str, Any]) -> schemas.SystemSettings:
    """Merge ``changes`` section by section (``general``, ``finance``, ``operations``)."""
    current = (await get_settings(adapter)).to_document()
    for section, values in changes.items():
        if section in current and isinstance(values, Mapping):
            current[section] = {**current[section], **values}
    try:
        updated = schemas.SystemSettings.from_document(current)
    except ValidationError as exc:
        errors = field_errors_from_pydantic(exc)
        raise ValidationFailed("Invalid settings", errors) from exc
    await adapter.write(SYSTEM, SETTINGS_DOC, updated.to_document())
    logger.info("System settings updated: %s", ", ".join(sorted(changes)))
    return updated


async def allocate_invoice_number(adapter: PersistenceAdapter) -> str:
    """Reserve the next invoice number, e.g. ``INV-00042``."""
    for _ in range(_ALLOCATE_ATTEMPTS):
        doc = await _settings_doc(adapter)
        finance = doc.get("finance") or {}
        sequence = int(finance.get("nextInvoiceNumber") or 1)
        claimed = await adapter.update_if(
            SYSTEM,
            SETTINGS_DOC,
            {"finance": [finance]},
            {"finance": {**finance, "nextInvoiceNumber": sequence + 1}},
        )
        if claimed is not None:
            prefix = finance.get("invoicePrefix") or app_settings.INVOICE_PREFIX
            return format_invoice_number(prefix, sequence)
    raise PersistenceError("Could not allocate an invoice number", {"invoiceNumber": "contended"})


async def seed_demo_data(adapter: PersistenceAdapter) -> Dict[str, int]:
    """Write the demo clients, interpreters, rates, users and settings."""
    from ..services.seed import demo_documents

    counts: Dict[str, int] = {}
    for collection, docs in demo_documents().items():
        for doc_id, data in docs.items():
            # Keep the live invoice counter
            if collection == SYSTEM and await adapter.fetch_one(SYSTEM, doc_id) is not None:
                continue
            await adapter.write(collection, doc_id, data)
        counts[collection] = len(docs)
    logger.info("Seeded demo data: %s", counts)
    return counts

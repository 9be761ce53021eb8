"""Demo records for a fresh install or an offline session.

Used by ``POST /api/v1/system/seed`` and, when ``SEED_LOCAL_MIRROR`` is set,
to pre-populate the local mirror so the app is usable without the remote store.
"""

from typing import Any, Dict

from ..core.config import settings
from ..models.booking import ServiceType
from ..models.document import Collections
from ..models.rate import RateType, UnitType
from ..models.user import UserRole


def _rates() -> Dict[str, Dict[str, Any]]:
    rates = {}
    for service in ServiceType:
        for rate_type, amount in (
            (RateType.CLIENT, settings.DEFAULT_CLIENT_RATE),
            (RateType.INTERPRETER, settings.DEFAULT_INTERPRETER_RATE),
        ):
            slug = service.name.lower()
            rates[f"{rate_type.value.lower()}-{slug}"] = {
                "rateType": rate_type.value,
                "serviceType": service.value,
                "unitType": UnitType.HOUR.value,
                "amountPerUnit": amount,
                "minimumUnits": settings.DEFAULT_MINIMUM_UNITS,
                "active": True,
                "currency": settings.DEFAULT_CURRENCY,
            }
    return rates


def demo_documents() -> Dict[str, Dict[str, Dict[str, Any]]]:
    return {
        Collections.CLIENTS: {
            "client-nhs": {
                "companyName": "Northside NHS Trust",
                "billingAddress": "1 Hospital Road, Leeds LS1 3EX",
                "paymentTermsDays": 30,
                "contactPerson": "Amira Shah",
                "email": "bookings@northside.example",
                "defaultCostCodeType": "PO",
            },
            "client-council": {
                "companyName": "Riverside Council",
                "billingAddress": "Civic Centre, Hull HU1 2AA",
                "paymentTermsDays": 14,
                "contactPerson": "Tom Reilly",
                "email": "interpreting@riverside.example",
            },
        },
        Collections.INTERPRETERS: {
            "interp-ana": {
                "name": "Ana Popescu",
                "email": "ana@example.com",
                "languages": ["Romanian", "Italian"],
                "regions": ["Yorkshire"],
                "qualifications": ["DPSI"],
                "status": "ACTIVE",
                "isAvailable": True,
                "postcode": "LS6 2AB",
            },
            "interp-karim": {
                "name": "Karim Haddad",
                "email": "karim@example.com",
                "languages": ["Arabic (Levantine)", "French"],
                "regions": ["Yorkshire", "North East"],
                "qualifications": ["DPSI", "NRPSI"],
                "status": "ACTIVE",
                "isAvailable": True,
                "postcode": "HU3 1XY",
            },
            "interp-li": {
                "name": "Li Wei",
                "email": "li@example.com",
                "languages": ["Mandarin", "Cantonese"],
                "regions": ["North West"],
                "status": "ONBOARDING",
                "isAvailable": False,
            },
        },
        Collections.USERS: {
            "user-admin": {"displayName": "Agency Admin", "email": "admin@example.com", "role": UserRole.ADMIN.value},
            "user-nhs": {
                "displayName": "Amira Shah",
                "email": "bookings@northside.example",
                "role": UserRole.CLIENT.value,
                "profileId": "client-nhs",
            },
            "user-ana": {
                "displayName": "Ana Popescu",
                "email": "ana@example.com",
                "role": UserRole.INTERPRETER.value,
                "profileId": "interp-ana",
            },
        },
        Collections.RATES: _rates(),
        Collections.SYSTEM: {
            Collections.SETTINGS_DOC: {
                "general": {
                    "companyName": "Lingland Interpreting",
                    "supportEmail": "support@example.com",
                    "businessAddress": "",
                },
                "finance": {
                    "currency": settings.DEFAULT_CURRENCY,
                    "vatRate": 0.0,
                    "vatNumber": "",
                    "invoicePrefix": settings.INVOICE_PREFIX,
                    "nextInvoiceNumber": 1,
                    "paymentTermsDays": settings.DEFAULT_PAYMENT_TERMS_DAYS,
                    "invoiceFooterText": "Thank you for your business.",
                },
                "operations": {
                    "minBookingDurationMinutes": 30,
                    "cancellationWindowHours": 24,
                    "timeIncrementMinutes": 15,
                    "defaultOnlinePlatformUrl": "",
                },
            },
        },
    }

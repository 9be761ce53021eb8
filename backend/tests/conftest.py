from pathlib import Path
from dotenv import load_dotenv

# Load environment variables for tests before the app reads its settings
load_dotenv(Path(__file__).resolve().parents[1] / '.env.test')

import asyncio
import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.dependencies import get_adapter
from app.crud import (
    AssignmentEngine,
    BookingManager,
    DocumentStore,
    InMemoryDocumentStore,
    InvoiceGenerator,
    PersistenceAdapter,
    SqlDocumentStore,
    TimesheetManager,
)
from app.models.base import BaseModel
from app.models.user import UserRole
from app.schemas import Actor
from app.services.seed import demo_documents


class FailingStore(DocumentStore):
    """Remote store that is unreachable for every call."""

    def __init__(self):
        self.calls = 0

    def _fail(self, *args, **kwargs):
        self.calls += 1
        raise ConnectionError("remote store unreachable")

    query = get = put = compare_and_set = ping = _fail


@pytest.fixture
def run():
    """Drive a coroutine to completion from a synchronous test."""
    return asyncio.run


@pytest.fixture
def mirror():
    return InMemoryDocumentStore(demo_documents())


@pytest.fixture
def sql_store():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    BaseModel.metadata.create_all(engine)
    store = SqlDocumentStore(sessionmaker(bind=engine))
    yield store
    engine.dispose()


@pytest.fixture
def failing_remote():
    return FailingStore()


@pytest.fixture
def adapter(mirror):
    """Adapter backed only by a fresh, demo-seeded local mirror."""
    return PersistenceAdapter(None, mirror)


@pytest.fixture
def admin():
    return Actor(id="user-admin", role=UserRole.ADMIN, display_name="Agency Admin")


@pytest.fixture
def client_actor():
    return Actor(id="user-nhs", role=UserRole.CLIENT, display_name="Amira Shah", profile_id="client-nhs")


@pytest.fixture
def ana():
    return Actor(id="user-ana", role=UserRole.INTERPRETER, display_name="Ana Popescu", profile_id="interp-ana")


@pytest.fixture
def karim():
    return Actor(id="user-karim", role=UserRole.INTERPRETER, display_name="Karim Haddad", profile_id="interp-karim")


@pytest.fixture
def booking_draft():
    """Factory for a valid booking payload in stored (camelCase) form."""

    def _draft(**overrides):
        draft = {
            "clientId": "client-nhs",
            "serviceType": "Face-to-Face",
            "languageFrom": "English",
            "languageTo": "Romanian",
            "date": "2024-06-01",
            "startTime": "09:00",
            "durationMinutes": 60,
            "locationType": "ONSITE",
            "address": "1 Hospital Road",
            "postcode": "LS1 3EX",
        }
        draft.update(overrides)
        return draft

    return _draft


@pytest.fixture
def confirmed_booking(run, adapter, booking_draft):
    """Factory: a booking confirmed with an interpreter (default Ana)."""

    def _confirmed(interpreter_id="interp-ana", **overrides):
        async def _go():
            manager = BookingManager(adapter)
            booking = await manager.create(booking_draft(**overrides))
            return await manager.assign_interpreter(booking.id, interpreter_id)

        return run(_go())

    return _confirmed


@pytest.fixture
def approved_timesheet(run, adapter, confirmed_booking):
    """Factory: a COMPLETED booking with an approved timesheet for the given day."""

    def _approved(day="2024-06-01", hours=1, interpreter_id="interp-ana", **overrides):
        booking = confirmed_booking(interpreter_id=interpreter_id, date=day, **overrides)

        async def _go():
            await BookingManager(adapter).set_status(booking.id, "COMPLETED")
            start = datetime.datetime.fromisoformat(f"{day}T{booking.start_time}")
            manager = TimesheetManager(adapter)
            ts = await manager.submit({
                "bookingId": booking.id,
                "actualStart": start.isoformat(),
                "actualEnd": (start + datetime.timedelta(hours=hours)).isoformat(),
                "breakDurationMinutes": 0,
            })
            return await manager.approve(ts.id)

        return run(_go())

    return _approved


@pytest.fixture
def engines(adapter):
    """The core managers wired to the test adapter."""
    return {
        "bookings": BookingManager(adapter),
        "offers": AssignmentEngine(adapter),
        "timesheets": TimesheetManager(adapter),
        "invoices": InvoiceGenerator(adapter),
    }


def actor_headers(actor):
    headers = {"X-Actor-Id": actor.id, "X-Actor-Role": actor.role.value, "X-Actor-Name": actor.display_name}
    if actor.profile_id:
        headers["X-Actor-Profile-Id"] = actor.profile_id
    return headers


@pytest.fixture
def headers_for():
    return actor_headers


@pytest.fixture
def api(adapter):
    from app.main import app

    app.dependency_overrides[get_adapter] = lambda: adapter
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()

import logging

import pytest

from app.crud import AssignmentEngine, BookingManager
from app.crud.crud_interpreter import find_interpreters_by_language
from app.models import AssignmentStatus, BookingStatus
from app.utils.errors import (
    BookingAlreadyConfirmed,
    InvalidTransition,
    PermissionDenied,
    ScheduleConflict,
    ValidationFailed,
)


@pytest.fixture
def requested(run, adapter, booking_draft):
    def _requested(**overrides):
        return run(BookingManager(adapter).create(booking_draft(**overrides)))

    return _requested


def _booking_status(run, adapter, booking_id):
    return run(adapter.fetch_one("bookings", booking_id))["status"]


def test_offer_moves_requested_booking_to_offered(run, adapter, requested):
    engine = AssignmentEngine(adapter)
    booking = requested()
    offer = run(engine.create_offer(booking.id, "interp-ana"))

    assert offer.status == AssignmentStatus.OFFERED
    assert offer.booking_snapshot["languageTo"] == "Romanian"
    assert offer.booking_snapshot["clientName"] == "Northside NHS Trust"
    assert _booking_status(run, adapter, booking.id) == "OFFERED"
    # Re-offering to the same interpreter returns the open offer
    assert run(engine.create_offer(booking.id, "interp-ana")).id == offer.id


def test_offer_rejects_unknown_interpreter_and_closed_booking(run, adapter, requested, confirmed_booking):
    engine = AssignmentEngine(adapter)
    with pytest.raises(ValidationFailed):
        run(engine.create_offer(requested().id, "nobody"))
    with pytest.raises(InvalidTransition):
        run(engine.create_offer(confirmed_booking().id, "interp-karim"))
    assert run(engine.create_offer("missing", "interp-ana")) is None


def test_accept_confirms_booking_and_expires_other_offers(run, adapter, requested, ana):
    engine = AssignmentEngine(adapter)
    booking = requested()
    offer_a, offer_b = run(engine.broadcast(booking.id, ["interp-ana", "interp-karim"]))

    accepted = run(engine.accept(offer_a.id, ana, check_conflicts=True))

    assert accepted.status == AssignmentStatus.ACCEPTED
    assert accepted.responded_at is not None
    stored = run(adapter.fetch_one("bookings", booking.id))
    assert stored["status"] == "CONFIRMED"
    assert stored["interpreterId"] == "interp-ana"
    assert stored["interpreterName"] == "Ana Popescu"
    assert run(engine.get(offer_b.id)).status == AssignmentStatus.EXPIRED


def test_second_accept_loses_with_already_confirmed(run, adapter, requested, karim):
    engine = AssignmentEngine(adapter)
    booking = requested()
    offer_a, offer_b = run(engine.broadcast(booking.id, ["interp-ana", "interp-karim"]))
    # Another accept lands between B reading its offer and confirming the booking
    adapter.mirror.compare_and_set(
        "bookings",
        booking.id,
        {"status": ["OFFERED"]},
        {"status": "CONFIRMED", "interpreterId": "interp-ana", "interpreterName": "Ana Popescu"},
    )

    with pytest.raises(BookingAlreadyConfirmed) as exc:
        run(engine.accept(offer_b.id, karim))

    assert exc.value.kind == "already_confirmed"
    assert run(engine.get(offer_b.id)).status == AssignmentStatus.EXPIRED
    stored = run(adapter.fetch_one("bookings", booking.id))
    assert stored["interpreterId"] == "interp-ana"


def test_answered_offer_cannot_be_accepted(run, adapter, requested):
    engine = AssignmentEngine(adapter)
    offer = run(engine.create_offer(requested().id, "interp-ana"))
    run(engine.decline(offer.id))
    with pytest.raises(InvalidTransition):
        run(engine.accept(offer.id))
    with pytest.raises(InvalidTransition):
        run(engine.decline(offer.id))


def test_accept_does_not_overwrite_a_concurrent_decline(run, adapter, requested, ana, monkeypatch):
    engine = AssignmentEngine(adapter)
    booking = requested()
    offer = run(engine.create_offer(booking.id, "interp-ana"))
    stale = run(engine.get(offer.id))
    real_get = engine.get
    reads = []

    async def get_stale_first(assignment_id):
        reads.append(assignment_id)
        return stale if len(reads) == 1 else await real_get(assignment_id)

    monkeypatch.setattr(engine, "get", get_stale_first)
    # The decline lands after accept has read the offer as still open
    adapter.mirror.compare_and_set("assignments", offer.id, {"status": ["OFFERED"]}, {"status": "DECLINED"})

    with pytest.raises(InvalidTransition) as exc:
        run(engine.accept(offer.id, ana))

    assert exc.value.field_errors == {"status": "DECLINED"}
    assert run(real_get(offer.id)).status == AssignmentStatus.DECLINED
    assert _booking_status(run, adapter, booking.id) == "OFFERED"


def test_only_the_offered_interpreter_may_respond(run, adapter, requested, karim, client_actor, admin):
    engine = AssignmentEngine(adapter)
    offer = run(engine.create_offer(requested().id, "interp-ana"))
    with pytest.raises(PermissionDenied):
        run(engine.accept(offer.id, karim))
    with pytest.raises(PermissionDenied):
        run(engine.decline(offer.id, client_actor))
    assert run(engine.expire(offer.id, admin)).status == AssignmentStatus.EXPIRED


def test_declining_every_offer_returns_booking_to_searching(run, adapter, requested, ana, karim, caplog):
    caplog.set_level(logging.INFO, logger="app.utils.status_logger")
    engine = AssignmentEngine(adapter)
    booking = requested()
    offer_a, offer_b = run(engine.broadcast(booking.id, ["interp-ana", "interp-karim"]))

    run(engine.decline(offer_a.id, ana))
    assert _booking_status(run, adapter, booking.id) == "OFFERED"
    run(engine.decline(offer_b.id, karim))
    assert _booking_status(run, adapter, booking.id) == "SEARCHING"
    assert any(getattr(r, "new_status", None) == "SEARCHING" for r in caplog.records)

    # A fresh offer keeps the booking SEARCHING; it can still be accepted
    offer_c = run(engine.create_offer(booking.id, "interp-karim"))
    assert _booking_status(run, adapter, booking.id) == "SEARCHING"
    run(engine.accept(offer_c.id, karim))
    assert _booking_status(run, adapter, booking.id) == "CONFIRMED"


def test_offer_listing_refreshes_stale_snapshots(run, adapter, requested):
    engine = AssignmentEngine(adapter)
    booking = requested()
    offer = run(engine.create_offer(booking.id, "interp-ana"))
    adapter.mirror.compare_and_set("assignments", offer.id, {}, {"bookingSnapshot": {"date": "2024-06-01"}})

    listed = run(engine.list_offers_for_interpreter("interp-ana"))

    assert [o.id for o in listed] == [offer.id]
    assert listed[0].booking_snapshot["serviceType"] == "Face-to-Face"
    assert run(adapter.fetch_one("assignments", offer.id))["bookingSnapshot"]["startTime"] == "09:00"


def test_offer_listing_only_shows_open_offers(run, adapter, requested):
    engine = AssignmentEngine(adapter)
    open_offer = run(engine.create_offer(requested().id, "interp-ana"))
    declined = run(engine.create_offer(requested().id, "interp-ana"))
    run(engine.decline(declined.id))
    assert [o.id for o in run(engine.list_offers_for_interpreter("interp-ana"))] == [open_offer.id]
    assert {o.id for o in run(engine.list_assignments_for_interpreter("interp-ana"))} == {open_offer.id, declined.id}


def test_conflict_check_against_confirmed_bookings(run, adapter, confirmed_booking):
    engine = AssignmentEngine(adapter)
    existing = confirmed_booking()

    clash = run(engine.check_conflict("interp-ana", "2024-06-01", "09:30", 60))
    assert clash is not None and clash.id == existing.id
    assert run(engine.check_conflict("interp-ana", "2024-06-01", "10:00", 60)) is None
    assert run(engine.check_conflict("interp-karim", "2024-06-01", "09:30", 60)) is None
    assert run(engine.check_conflict("interp-ana", "2024-06-01", "09:30", 60, exclude_booking_id=existing.id)) is None


def test_accept_with_conflict_check_refuses_double_booking(run, adapter, requested, confirmed_booking, ana):
    engine = AssignmentEngine(adapter)
    confirmed_booking()
    booking = requested(startTime="09:30")
    offer = run(engine.create_offer(booking.id, "interp-ana"))

    with pytest.raises(ScheduleConflict):
        run(engine.accept(offer.id, ana, check_conflicts=True))
    assert run(engine.get(offer.id)).status == AssignmentStatus.OFFERED
    assert _booking_status(run, adapter, booking.id) == "OFFERED"


def test_language_search_is_case_insensitive_and_active_only(run, adapter):
    assert [i.id for i in run(find_interpreters_by_language(adapter, "arabic"))] == ["interp-karim"]
    assert [i.id for i in run(find_interpreters_by_language(adapter, "ROMANIAN"))] == ["interp-ana"]
    # Li is still onboarding
    assert run(find_interpreters_by_language(adapter, "Mandarin")) == []
    assert run(find_interpreters_by_language(adapter, "  ")) == []

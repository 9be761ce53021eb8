import pytest

from app.crud import BookingManager, TimesheetManager
from app.crud.crud_rate import get_rate, upsert_rate
from app.models import RateType, ServiceType, TimesheetStatus
from app.schemas import Rate
from app.utils.errors import InvalidTransition, PermissionDenied, ValidationFailed


def _times(day="2024-06-01", start="09:00", end="10:00"):
    return {"actualStart": f"{day}T{start}:00", "actualEnd": f"{day}T{end}:00"}


def test_submit_stores_zeroed_unapproved_timesheet(run, adapter, confirmed_booking, ana):
    booking = confirmed_booking()
    ts = run(TimesheetManager(adapter).submit({"bookingId": booking.id, **_times()}, ana))

    assert ts.status == TimesheetStatus.SUBMITTED
    assert ts.admin_approved is False
    assert ts.interpreter_id == "interp-ana"
    assert ts.client_id == "client-nhs"
    assert ts.total_client_amount == 0 and ts.total_interpreter_amount == 0
    assert ts.client_invoice_id is None and ts.interpreter_invoice_id is None
    assert [t.id for t in run(TimesheetManager(adapter).list_pending_approval())] == [ts.id]


def test_submit_validation(run, adapter, confirmed_booking, booking_draft):
    manager = TimesheetManager(adapter)
    booking = confirmed_booking()
    with pytest.raises(ValidationFailed) as exc:
        run(manager.submit({"bookingId": booking.id, **_times(start="10:00", end="09:00")}))
    assert "actualEnd" in exc.value.field_errors
    with pytest.raises(ValidationFailed):
        run(manager.submit({"bookingId": booking.id, "breakDurationMinutes": -5, **_times()}))
    with pytest.raises(ValidationFailed):
        run(manager.submit({"bookingId": "missing", **_times()}))
    with pytest.raises(ValidationFailed):
        run(manager.submit({"bookingId": booking.id, "actualStart": "not a time", "actualEnd": "2024-06-01T10:00:00"}))

    with pytest.raises(ValidationFailed) as exc:
        run(manager.submit({"bookingId": booking.id, "actualStart": "2024-06-01T09:00:00", "actualEnd": "2024-06-01T10:00:00Z"}))
    assert "actualEnd" in exc.value.field_errors
    aware = run(manager.submit({"bookingId": booking.id, "actualStart": "2024-06-01T09:00:00Z", "actualEnd": "2024-06-01T10:00:00+00:00"}))
    assert aware.actual_end > aware.actual_start

    unstaffed = run(BookingManager(adapter).create(booking_draft()))
    with pytest.raises(InvalidTransition):
        run(manager.submit({"bookingId": unstaffed.id, **_times()}))


def test_only_booked_interpreter_submits_once(run, adapter, confirmed_booking, karim, client_actor, ana):
    manager = TimesheetManager(adapter)
    booking = confirmed_booking()
    with pytest.raises(PermissionDenied):
        run(manager.submit({"bookingId": booking.id, **_times()}, karim))
    with pytest.raises(PermissionDenied):
        run(manager.submit({"bookingId": booking.id, **_times()}, client_actor))

    first = run(manager.submit({"bookingId": booking.id, **_times()}, ana))
    with pytest.raises(InvalidTransition):
        run(manager.submit({"bookingId": booking.id, **_times()}, ana))

    # A rejected timesheet may be replaced
    run(manager.reject(first.id, "Wrong end time"))
    assert run(manager.get(first.id)).rejection_reason == "Wrong end time"
    assert run(manager.submit({"bookingId": booking.id, **_times(end="10:30")}, ana)).status == TimesheetStatus.SUBMITTED


def test_approval_computes_amounts_from_rates(run, adapter, approved_timesheet):
    ts = approved_timesheet(hours=1)
    assert ts.status == TimesheetStatus.APPROVED
    assert ts.admin_approved is True
    assert ts.units_billable_to_client == 1.0
    assert ts.client_rate == 40.0 and ts.interpreter_rate == 25.0
    assert ts.total_client_amount == ts.client_amount_calculated == 40.0
    assert ts.total_interpreter_amount == ts.interpreter_amount_calculated == 25.0
    assert ts.ready_for_client_invoice and ts.ready_for_interpreter_invoice


def test_approval_uses_service_specific_rate(run, adapter, confirmed_booking):
    run(upsert_rate(adapter, Rate(rate_type=RateType.CLIENT, service_type=ServiceType.TELEPHONE, amount_per_unit=30, minimum_units=0.5)))
    booking = confirmed_booking(serviceType="Telephone", locationType="ONLINE", address=None, postcode=None)
    manager = TimesheetManager(adapter)
    ts = run(manager.submit({"bookingId": booking.id, **_times(end="09:15")}))
    approved = run(manager.approve(ts.id))
    assert approved.units_billable_to_client == 0.5
    assert approved.total_client_amount == 15.0
    assert approved.units_payable_to_interpreter == 1.0
    assert approved.total_interpreter_amount == 25.0


def test_approve_twice_is_rejected(run, adapter, approved_timesheet):
    ts = approved_timesheet()
    with pytest.raises(InvalidTransition):
        run(TimesheetManager(adapter).approve(ts.id))
    with pytest.raises(InvalidTransition):
        run(TimesheetManager(adapter).reject(ts.id))
    assert run(TimesheetManager(adapter).approve("missing")) is None


def test_uninvoiced_listing(run, adapter, approved_timesheet):
    first = approved_timesheet(day="2024-06-01")
    second = approved_timesheet(day="2024-06-02")
    adapter.mirror.compare_and_set("timesheets", second.id, {}, {"interpreterInvoiceId": "inv-1"})
    assert [t.id for t in run(TimesheetManager(adapter).list_uninvoiced_for_interpreter("interp-ana"))] == [first.id]


def test_missing_rate_falls_back_to_defaults(run, adapter):
    adapter.mirror._data["rates"] = {}
    rate = run(get_rate(adapter, RateType.INTERPRETER, ServiceType.BSL))
    assert rate.amount_per_unit == 25.0
    assert rate.minimum_units == 1.0

import datetime as dt

import pytest

from app.schemas import Booking
from app.schemas.booking import normalize_start_time
from app.services.schedule import booking_interval, expected_end_time, find_conflict, intervals_overlap


def _booking(booking_id, start, minutes, day="2024-06-01"):
    return Booking(
        id=booking_id,
        service_type="Face-to-Face",
        language_from="English",
        language_to="Romanian",
        date=day,
        start_time=start,
        duration_minutes=minutes,
        location_type="ONLINE",
        status="CONFIRMED",
        interpreter_id="interp-ana",
    )


def test_overlapping_slot_is_reported():
    existing = [_booking("b1", "09:00", 60)]
    clash = find_conflict("2024-06-01", "09:30", 60, existing)
    assert clash is not None and clash.id == "b1"


def test_back_to_back_slots_do_not_conflict():
    existing = [_booking("b1", "09:00", 60)]
    assert find_conflict("2024-06-01", "10:00", 60, existing) is None
    assert find_conflict("2024-06-01", "08:00", 60, existing) is None


def test_other_days_and_excluded_booking_are_ignored():
    existing = [_booking("b1", "09:00", 60), _booking("b2", "09:00", 60, day="2024-06-02")]
    assert find_conflict(dt.date(2024, 6, 2), "09:15", 30, existing, exclude_booking_id="b2") is None
    assert find_conflict(dt.date(2024, 6, 2), "09:15", 30, existing).id == "b2"


def test_enclosing_slot_conflicts():
    existing = [_booking("b1", "10:00", 30)]
    assert find_conflict("2024-06-01", "09:00", 180, existing).id == "b1"


def test_intervals_are_half_open():
    a = booking_interval("2024-06-01", "09:00", 60)
    b = booking_interval("2024-06-01", "10:00", 15)
    assert not intervals_overlap(a, b)
    assert intervals_overlap(a, booking_interval("2024-06-01", "09:59", 1))


@pytest.mark.parametrize(
    "start,minutes,end",
    [("09:00", 60, "10:00"), ("9:15", 50, "10:05"), ("23:30", 60, "00:30")],
)
def test_expected_end_time(start, minutes, end):
    assert expected_end_time(start, minutes) == end


def test_start_time_normalisation():
    assert normalize_start_time("9:05") == "09:05"
    assert normalize_start_time("14:30:00") == "14:30"
    with pytest.raises(ValueError):
        normalize_start_time("25:00")

"""Schedule-conflict checking for an interpreter's confirmed bookings.

Intervals are half-open: ``[start, start + duration)``. Two bookings that
merely touch (one ends exactly when the other starts) do not conflict.
"""

from __future__ import annotations

import datetime as dt
from typing import Iterable, Optional, Tuple, Union

from ..schemas.booking import Booking, normalize_start_time

DateLike = Union[dt.date, str]


def _as_date(value: DateLike) -> dt.date:
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(str(value))


def booking_interval(date: DateLike, start_time: str, duration_minutes: int) -> Tuple[dt.datetime, dt.datetime]:
    hh, mm = normalize_start_time(start_time).split(":")
    start = dt.datetime.combine(_as_date(date), dt.time(int(hh), int(mm)))
    return start, start + dt.timedelta(minutes=int(duration_minutes))


def intervals_overlap(
    a: Tuple[dt.datetime, dt.datetime],
    b: Tuple[dt.datetime, dt.datetime],
) -> bool:
    return a[0] < b[1] and a[1] > b[0]


def expected_end_time(start_time: str, duration_minutes: int) -> str:
    """Wall-clock ``HH:MM`` at which a job is expected to end.

    Jobs running past midnight wrap around (``23:30`` + 60 -> ``00:30``);
    the date change is not represented.
    """
    _, end = booking_interval(dt.date(2000, 1, 1), start_time, duration_minutes)
    return end.strftime("%H:%M")


def find_conflict(
    date: DateLike,
    start_time: str,
    duration_minutes: int,
    bookings: Iterable[Booking],
    exclude_booking_id: Optional[str] = None,
) -> Optional[Booking]:
    """Return the first booking whose slot overlaps the candidate slot."""
    day = _as_date(date)
    candidate = booking_interval(day, start_time, duration_minutes)
    for existing in bookings:
        if exclude_booking_id and existing.id == exclude_booking_id:
            continue
        if existing.date != day:
            continue
        if intervals_overlap(candidate, booking_interval(existing.date, existing.start_time, existing.duration_minutes)):
            return existing
    return None

"""Billable/payable unit and amount maths for approved timesheets.

All money maths happens in ``Decimal`` and is rounded half-up to pennies;
values leave this module as floats because documents are stored as JSON.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Iterable

_CENT = Decimal("0.01")
_MINUTES_PER_UNIT = Decimal("60")


def _to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def quantize(value: Any) -> Decimal:
    return _to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def money(value: Any) -> float:
    return float(quantize(value))


def line_total(units: Any, rate: Any) -> float:
    """Total for a line item: ``units * rate`` rounded to pennies."""
    return float(quantize(_to_decimal(units) * _to_decimal(rate)))


def sum_money(values: Iterable[Any]) -> float:
    total = Decimal("0")
    for v in values:
        total += quantize(v)
    return float(quantize(total))


def worked_minutes(actual_start: datetime, actual_end: datetime, break_minutes: int | None) -> Decimal:
    """Elapsed minutes minus break, never negative."""
    elapsed = Decimal(str((actual_end - actual_start).total_seconds())) / Decimal("60")
    worked = elapsed - _to_decimal(break_minutes)
    return worked if worked > 0 else Decimal("0")


def billable_units(minutes: Decimal, minimum_units: Any) -> Decimal:
    """Hours worked with the rate's minimum-units floor applied."""
    units = minutes / _MINUTES_PER_UNIT
    floor = _to_decimal(minimum_units)
    return quantize(max(units, floor))


@dataclass
class TimesheetAmounts:
    units_billable_to_client: float
    units_payable_to_interpreter: float
    client_rate: float
    interpreter_rate: float
    total_client_amount: float
    total_interpreter_amount: float


def compute_timesheet_amounts(
    actual_start: datetime,
    actual_end: datetime,
    break_minutes: int | None,
    client_rate: Any,
    client_minimum_units: Any,
    interpreter_rate: Any,
    interpreter_minimum_units: Any,
) -> TimesheetAmounts:
    minutes = worked_minutes(actual_start, actual_end, break_minutes)
    client_units = billable_units(minutes, client_minimum_units)
    interp_units = billable_units(minutes, interpreter_minimum_units)
    return TimesheetAmounts(
        units_billable_to_client=float(client_units),
        units_payable_to_interpreter=float(interp_units),
        client_rate=money(client_rate),
        interpreter_rate=money(interpreter_rate),
        total_client_amount=line_total(client_units, client_rate),
        total_interpreter_amount=line_total(interp_units, interpreter_rate),
    )

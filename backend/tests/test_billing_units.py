from datetime import datetime
from decimal import Decimal

from app.services.billing_units import (
    billable_units,
    compute_timesheet_amounts,
    line_total,
    money,
    sum_money,
    worked_minutes,
)


def test_one_hour_at_default_rates():
    amounts = compute_timesheet_amounts(
        datetime(2024, 6, 1, 9, 0),
        datetime(2024, 6, 1, 10, 0),
        0,
        40,
        1,
        25,
        1,
    )
    assert amounts.units_billable_to_client == 1.0
    assert amounts.units_payable_to_interpreter == 1.0
    assert amounts.total_client_amount == 40.0
    assert amounts.total_interpreter_amount == 25.0


def test_minimum_units_floor_applies_to_short_jobs():
    amounts = compute_timesheet_amounts(
        datetime(2024, 6, 1, 9, 0),
        datetime(2024, 6, 1, 9, 20),
        0,
        40,
        1,
        25,
        0.5,
    )
    assert amounts.units_billable_to_client == 1.0
    assert amounts.units_payable_to_interpreter == 0.5
    assert amounts.total_client_amount == 40.0
    assert amounts.total_interpreter_amount == 12.5


def test_break_is_deducted_and_never_goes_negative():
    assert worked_minutes(datetime(2024, 6, 1, 9), datetime(2024, 6, 1, 11), 30) == Decimal("90")
    assert worked_minutes(datetime(2024, 6, 1, 9), datetime(2024, 6, 1, 9, 10), 30) == Decimal("0")


def test_fractional_units_round_to_pennies():
    # 100 minutes = 1.6666.. hours
    assert billable_units(Decimal("100"), 1) == Decimal("1.67")
    assert line_total(Decimal("1.67"), 40) == 66.8


def test_money_rounds_half_up():
    assert money(2.675) == 2.68
    assert money("0.005") == 0.01
    assert money(None) == 0.0
    assert sum_money([0.1, 0.2, "0.3"]) == 0.6

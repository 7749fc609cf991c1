# tests/test_calendar_logic.py

from datetime import date, time, datetime
import pytest

from recurbook.models import RecurrenceRule, ExceptionEntry, WEEKLY, BIWEEKLY, MONTHLY, CANCELLED, RESCHEDULED
from recurbook.calendar_logic import (
    generate_occurrences, step, latest_exceptions, duplicate_exception_dates, exception_dates, MAX_STEPS,
)


def rule(freq=WEEKLY, anchor=date(2024, 1, 1), at=time(9, 0), **kw):
    return RecurrenceRule(frequency=freq, anchor_date=anchor, anchor_time=at, **kw)


def test_weekly_four_occurrences():
    occ = generate_occurrences(rule(), [], date(2024, 1, 1), date(2024, 1, 22))
    assert [o.date for o in occ] == [
        date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22),
    ]
    assert all(o.time == time(9, 0) for o in occ)


def test_biweekly():
    occ = generate_occurrences(rule(BIWEEKLY), [], date(2024, 1, 1), date(2024, 2, 1))
    assert [o.date for o in occ] == [date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 29)]


def test_monthly_month_end_overflows():
    # Jan 31 + 1 month spills past the short February (2024 is a leap year)
    occ = generate_occurrences(rule(MONTHLY, date(2024, 1, 31)), [], date(2024, 1, 31), date(2024, 4, 30))
    assert [o.date for o in occ] == [date(2024, 1, 31), date(2024, 3, 2), date(2024, 4, 2)]


def test_monthly_step_non_leap_year():
    assert step(datetime(2023, 1, 31, 9, 0), MONTHLY) == datetime(2023, 3, 3, 9, 0)
    assert step(datetime(2024, 1, 15, 9, 0), MONTHLY) == datetime(2024, 2, 15, 9, 0)
    assert step(datetime(2024, 12, 10, 9, 0), MONTHLY) == datetime(2025, 1, 10, 9, 0)


def test_defaults_carried_into_occurrences():
    occ = generate_occurrences(rule(duration=45, value=120.0), [], date(2024, 1, 1), date(2024, 1, 1), client_id=7)
    assert len(occ) == 1
    assert occ[0].client_id == 7
    assert occ[0].duration == 45
    assert occ[0].value == 120.0


def test_anchor_before_window_advances():
    occ = generate_occurrences(rule(), [], date(2024, 3, 1), date(2024, 3, 31))
    assert [o.date for o in occ] == [date(2024, 3, 4), date(2024, 3, 11), date(2024, 3, 18), date(2024, 3, 25)]


def test_anchor_after_window_yields_nothing():
    assert generate_occurrences(rule(anchor=date(2024, 6, 1)), [], date(2024, 1, 1), date(2024, 1, 31)) == []


def test_inactive_rule_yields_nothing():
    assert generate_occurrences(rule(active=False), [], date(2024, 1, 1), date(2024, 12, 31)) == []


@pytest.mark.parametrize("anchor,at", [(None, time(9, 0)), (date(2024, 1, 1), None)])
def test_incomplete_anchor_yields_nothing(anchor, at):
    r = RecurrenceRule(frequency=WEEKLY, anchor_date=anchor, anchor_time=at)
    assert generate_occurrences(r, [], date(2024, 1, 1), date(2024, 12, 31)) == []


def test_empty_window():
    assert generate_occurrences(rule(), [], date(2024, 1, 22), date(2024, 1, 1)) == []


def test_unknown_frequency_has_no_further_steps():
    occ = generate_occurrences(rule("daily"), [], date(2024, 1, 1), date(2024, 1, 31))
    assert [o.date for o in occ] == [date(2024, 1, 1)]
    assert generate_occurrences(rule("daily"), [], date(2024, 1, 2), date(2024, 1, 31)) == []


def test_window_bounds_with_time_of_day():
    # 9:00 on Jan 8 is before the 10:00 window start
    occ = generate_occurrences(rule(), [], datetime(2024, 1, 8, 10, 0), datetime(2024, 1, 22, 8, 59))
    assert [o.date for o in occ] == [date(2024, 1, 15)]


@pytest.mark.parametrize("ex_type", [CANCELLED, RESCHEDULED])
def test_exception_suppresses_date(ex_type):
    ledger = [ExceptionEntry(date(2024, 1, 8), ex_type)]
    occ = generate_occurrences(rule(), ledger, date(2024, 1, 1), date(2024, 1, 22))
    assert date(2024, 1, 8) not in [o.date for o in occ]
    assert len(occ) == 3


def test_exceptions_as_plain_dates():
    occ = generate_occurrences(rule(), {date(2024, 1, 15)}, date(2024, 1, 1), date(2024, 1, 22))
    assert [o.date for o in occ] == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 22)]


def test_existing_real_slot_skipped():
    real = {(date(2024, 1, 8), time(9, 0))}
    occ = generate_occurrences(rule(), [], date(2024, 1, 1), date(2024, 1, 22), real)
    assert date(2024, 1, 8) not in [o.date for o in occ]


def test_real_slot_at_other_time_does_not_suppress():
    real = {(date(2024, 1, 8), time(14, 0))}
    occ = generate_occurrences(rule(), [], date(2024, 1, 1), date(2024, 1, 22), real)
    assert date(2024, 1, 8) in [o.date for o in occ]


def test_advance_cap_returns_empty():
    r = rule(MONTHLY, date(1900, 1, 1))
    assert generate_occurrences(r, [], date(2024, 1, 1), date(2024, 12, 31)) == []


def test_fixed_period_anchor_decades_before_window():
    occ = generate_occurrences(rule(anchor=date(2000, 1, 3)), [], date(2024, 1, 1), date(2024, 1, 14))
    assert [o.date for o in occ] == [date(2024, 1, 1), date(2024, 1, 8)]
    occ = generate_occurrences(rule(BIWEEKLY, date(2000, 1, 3)), [], date(2024, 1, 1), date(2024, 1, 28))
    assert [o.date for o in occ] == [date(2024, 1, 1), date(2024, 1, 15)]
    occ = generate_occurrences(rule(anchor=date(2000, 1, 3)), [], datetime(2024, 1, 1, 9, 1), date(2024, 1, 14))
    assert [o.start for o in occ] == [datetime(2024, 1, 8, 9, 0)]


def test_missing_duration_uses_default():
    occ = generate_occurrences(rule(duration=None), [], date(2024, 1, 1), date(2024, 1, 1), default_duration=45)
    assert occ[0].duration == 45


def test_emit_cap_returns_partial():
    occ = generate_occurrences(rule(), [], date(2024, 1, 1), date(2040, 1, 1))
    assert len(occ) == MAX_STEPS
    assert occ == sorted(occ, key=lambda o: o.start)


def test_ledger_helpers():
    ledger = [
        ExceptionEntry(date(2024, 1, 8), CANCELLED),
        ExceptionEntry(date(2024, 1, 15), RESCHEDULED, date(2024, 1, 16), time(10, 0)),
        ExceptionEntry(date(2024, 1, 8), RESCHEDULED, date(2024, 1, 9), time(9, 0)),
    ]
    assert exception_dates(ledger) == {date(2024, 1, 8), date(2024, 1, 15)}
    assert latest_exceptions(ledger)[date(2024, 1, 8)].type == RESCHEDULED
    assert duplicate_exception_dates(ledger) == [date(2024, 1, 8)]
